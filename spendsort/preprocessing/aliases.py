"""Regional merchant aliases.

Keys are in normalized form (lowercase, punctuation other than `&` and `'`
already stripped), values are the display names used across the app.
"""
from __future__ import annotations

from typing import Dict

GROCERIES = {
    "loblaws": "Loblaws",
    "loblaw": "Loblaws",
    "loblaws supermarket": "Loblaws",
    "loblaw's": "Loblaws",
    "sobeys": "Sobeys",
    "sobey": "Sobeys",
    "sobeys supermarket": "Sobeys",
    "metro": "Metro",
    "metro grocery": "Metro",
    "metro groceries": "Metro",
    "no frills": "No Frills",
    "nofrills": "No Frills",
    "fortinos": "Fortinos",
    "fortino": "Fortinos",
    "zehrs": "Zehrs",
    "zehr": "Zehrs",
    "zehrs markets": "Zehrs",
    "food basics": "Food Basics",
    "freshco": "FreshCo",
    "farm boy": "Farm Boy",
    "real canadian superstore": "Real Canadian Superstore",
    "superstore": "Real Canadian Superstore",
    "rcss": "Real Canadian Superstore",
    "walmart": "Walmart",
    "wal mart": "Walmart",
    "walmart supercenter": "Walmart",
    "walmart supercentre": "Walmart",
    "costco": "Costco",
    "costco wholesale": "Costco",
}

COFFEE = {
    "tim hortons": "Tim Hortons",
    "tim horton": "Tim Hortons",
    "tims": "Tim Hortons",
    "tim": "Tim Hortons",
    "timmy": "Tim Hortons",
    "timmy's": "Tim Hortons",
    "timmies": "Tim Hortons",
    "starbucks": "Starbucks",
    "starbucks coffee": "Starbucks",
    "sbux": "Starbucks",
    "second cup": "Second Cup",
    "second cup coffee": "Second Cup",
    "balzac's": "Balzac's Coffee",
    "balzacs": "Balzac's Coffee",
}

FAST_FOOD = {
    "mcdonalds": "McDonald's",
    "mcdonald's": "McDonald's",
    "mcdonald": "McDonald's",
    "mcd": "McDonald's",
    "mcds": "McDonald's",
    "burger king": "Burger King",
    "bk": "Burger King",
    "wendys": "Wendy's",
    "wendy's": "Wendy's",
    "wendy": "Wendy's",
    "a&w": "A&W",
    "a & w": "A&W",
    "a and w": "A&W",
    "subway": "Subway",
    "subway sandwiches": "Subway",
    "harvey's": "Harvey's",
    "harveys": "Harvey's",
    "kfc": "KFC",
    "popeyes": "Popeyes",
}

GAS = {
    "petro canada": "Petro-Canada",
    "petro can": "Petro-Canada",
    "petro": "Petro-Canada",
    "esso": "Esso",
    "esso gas": "Esso",
    "shell": "Shell",
    "shell gas": "Shell",
    "shell canada": "Shell",
    "husky": "Husky",
    "husky energy": "Husky",
    "pioneer": "Pioneer",
    "pioneer gas": "Pioneer",
    "ultramar": "Ultramar",
}

BANKS = {
    "cibc": "CIBC",
    "cibc bank": "CIBC",
    "canadian imperial bank": "CIBC",
    "td": "TD Bank",
    "td bank": "TD Bank",
    "td canada trust": "TD Bank",
    "rbc": "RBC",
    "rbc bank": "RBC",
    "royal bank": "RBC",
    "royal bank of canada": "RBC",
    "bmo": "BMO",
    "bmo bank": "BMO",
    "bank of montreal": "BMO",
    "scotiabank": "Scotiabank",
    "scotia": "Scotiabank",
    "bank of nova scotia": "Scotiabank",
    "tangerine": "Tangerine",
}

TELECOM = {
    "rogers": "Rogers",
    "rogers communications": "Rogers",
    "rogers wireless": "Rogers",
    "bell": "Bell",
    "bell canada": "Bell",
    "bell mobility": "Bell",
    "telus": "Telus",
    "telus communications": "Telus",
    "telus mobility": "Telus",
    "fido": "Fido",
    "fido solutions": "Fido",
    "koodo": "Koodo",
    "koodo mobile": "Koodo",
    "freedom mobile": "Freedom Mobile",
}

PHARMACY = {
    "shoppers drug mart": "Shoppers Drug Mart",
    "shoppers": "Shoppers Drug Mart",
    "sdm": "Shoppers Drug Mart",
    "rexall": "Rexall",
    "rexall pharmacy": "Rexall",
    "pharma plus": "Pharma Plus",
    "pharmaplus": "Pharma Plus",
    "london drugs": "London Drugs",
}

RETAIL = {
    "canadian tire": "Canadian Tire",
    "can tire": "Canadian Tire",
    "ct": "Canadian Tire",
    "dollarama": "Dollarama",
    "dollar store": "Dollarama",
    "winners": "Winners",
    "tj maxx": "Winners",
    "marshalls": "Marshalls",
    "best buy": "Best Buy",
    "home depot": "The Home Depot",
    "the home depot": "The Home Depot",
    "ikea": "IKEA",
}

ONLINE = {
    "amazon": "Amazon",
    "amazon ca": "Amazon",
    "amazon com": "Amazon",
    "amzn": "Amazon",
    "amzn mktp": "Amazon",
    "netflix": "Netflix",
    "netflix com": "Netflix",
    "spotify": "Spotify",
    "spotify premium": "Spotify",
    "disney plus": "Disney+",
    "crave": "Crave",
}

TRANSIT = {
    "ttc": "TTC",
    "toronto transit": "TTC",
    "toronto transit commission": "TTC",
    "go transit": "GO Transit",
    "go train": "GO Transit",
    "go bus": "GO Transit",
    "presto": "Presto",
    "presto card": "Presto",
    "uber": "Uber",
    "uber trip": "Uber",
}

ENTERTAINMENT = {
    "cineplex": "Cineplex",
    "cineplex odeon": "Cineplex",
    "cineplex entertainment": "Cineplex",
    "lcbo": "LCBO",
    "liquor control board": "LCBO",
    "beer store": "The Beer Store",
    "the beer store": "The Beer Store",
}

UTILITIES = {
    "toronto hydro": "Toronto Hydro",
    "hydro one": "Hydro One",
    "enbridge": "Enbridge",
    "enbridge gas": "Enbridge",
    "alectra": "Alectra Utilities",
}

ALIAS_GROUPS: Dict[str, Dict[str, str]] = {
    "groceries": GROCERIES,
    "coffee": COFFEE,
    "fast_food": FAST_FOOD,
    "gas": GAS,
    "banks": BANKS,
    "telecom": TELECOM,
    "pharmacy": PHARMACY,
    "retail": RETAIL,
    "online": ONLINE,
    "transit": TRANSIT,
    "entertainment": ENTERTAINMENT,
    "utilities": UTILITIES,
}

CANONICAL_NAMES: Dict[str, str] = {}
for _group in ALIAS_GROUPS.values():
    CANONICAL_NAMES.update(_group)
del _group

__all__ = ["ALIAS_GROUPS", "CANONICAL_NAMES"]
