"""Built-in merchant knowledge used to bootstrap a fresh database.

Common Canadian merchants with their display names and categories. Loaded by
`scripts/seed_knowledge_base.py`; existing merchant names are left alone.
"""
from typing import TYPE_CHECKING, Dict, Iterable, List, NamedTuple, Optional

from spendsort.models import KnowledgeSource, MerchantKnowledgeEntry
from spendsort.utils.exceptions import SpendSortError
from spendsort.utils.logger import get_logger

if TYPE_CHECKING:
    from spendsort.storage.repository import SQLKnowledgeRepository

log = get_logger("seed")

SEED_CONFIDENCE = 0.95


class SeedMerchant(NamedTuple):
    merchant_name: str
    normalized_name: str
    category_slug: str
    subcategory_slug: str
    industry: str
    description: str
    website: Optional[str] = None

    def metadata(self) -> Dict[str, str]:
        meta = {"industry": self.industry, "description": self.description}
        if self.website:
            meta["website"] = self.website
        return meta


SEED_MERCHANTS: List[SeedMerchant] = [
    # GROCERIES (FOOD_AND_DRINK > GROCERIES)
    SeedMerchant("loblaws", "Loblaws", "food-and-drink", "groceries", "grocery", "Canadian grocery store chain"),
    SeedMerchant("sobeys", "Sobeys", "food-and-drink", "groceries", "grocery", "Canadian grocery store chain"),
    SeedMerchant("metro", "Metro", "food-and-drink", "groceries", "grocery", "Canadian grocery store chain"),
    SeedMerchant("no frills", "No Frills", "food-and-drink", "groceries", "grocery", "Canadian discount grocery chain"),
    SeedMerchant("fortinos", "Fortinos", "food-and-drink", "groceries", "grocery", "Ontario grocery chain"),
    SeedMerchant("zehrs", "Zehrs", "food-and-drink", "groceries", "grocery", "Ontario grocery chain"),
    SeedMerchant("real canadian superstore", "Real Canadian Superstore", "food-and-drink", "groceries", "grocery", "Canadian supermarket chain"),
    SeedMerchant("walmart", "Walmart", "general-merchandise", "superstores", "retail", "Big box retailer"),
    SeedMerchant("costco", "Costco", "general-merchandise", "superstores", "retail", "Warehouse club"),

    # COFFEE SHOPS (FOOD_AND_DRINK > COFFEE)
    SeedMerchant("tim hortons", "Tim Hortons", "food-and-drink", "coffee", "food_service", "Canadian coffee chain"),
    SeedMerchant("starbucks", "Starbucks", "food-and-drink", "coffee", "food_service", "International coffee chain"),
    SeedMerchant("second cup", "Second Cup", "food-and-drink", "coffee", "food_service", "Canadian coffee chain"),

    # FAST FOOD (FOOD_AND_DRINK > FAST_FOOD)
    SeedMerchant("mcdonalds", "McDonald's", "food-and-drink", "fast-food", "food_service", "Fast food chain"),
    SeedMerchant("burger king", "Burger King", "food-and-drink", "fast-food", "food_service", "Fast food chain"),
    SeedMerchant("wendys", "Wendy's", "food-and-drink", "fast-food", "food_service", "Fast food chain"),
    SeedMerchant("a&w", "A&W", "food-and-drink", "fast-food", "food_service", "Canadian fast food chain"),
    SeedMerchant("subway", "Subway", "food-and-drink", "fast-food", "food_service", "Sandwich chain"),

    # GAS STATIONS (TRANSPORTATION > GAS)
    SeedMerchant("petro canada", "Petro-Canada", "transportation", "gas", "gas_station", "Canadian gas station chain"),
    SeedMerchant("esso", "Esso", "transportation", "gas", "gas_station", "Gas station chain"),
    SeedMerchant("shell", "Shell", "transportation", "gas", "gas_station", "Gas station chain"),
    SeedMerchant("husky", "Husky", "transportation", "gas", "gas_station", "Canadian gas station chain"),

    # BANKS (BANK_FEES or TRANSFER)
    SeedMerchant("cibc", "CIBC", "bank-fees", "service-charges", "banking", "Canadian Imperial Bank of Commerce"),
    SeedMerchant("td bank", "TD Bank", "bank-fees", "service-charges", "banking", "TD Canada Trust"),
    SeedMerchant("rbc", "RBC", "bank-fees", "service-charges", "banking", "Royal Bank of Canada"),
    SeedMerchant("bmo", "BMO", "bank-fees", "service-charges", "banking", "Bank of Montreal"),
    SeedMerchant("scotiabank", "Scotiabank", "bank-fees", "service-charges", "banking", "Bank of Nova Scotia"),

    # TELECOM (RENT_AND_UTILITIES > TELEPHONE / INTERNET)
    SeedMerchant("rogers", "Rogers", "rent-and-utilities", "telephone", "telecom", "Canadian telecom provider"),
    SeedMerchant("bell", "Bell", "rent-and-utilities", "telephone", "telecom", "Canadian telecom provider"),
    SeedMerchant("telus", "Telus", "rent-and-utilities", "telephone", "telecom", "Canadian telecom provider"),
    SeedMerchant("fido", "Fido", "rent-and-utilities", "telephone", "telecom", "Canadian wireless provider"),

    # PHARMACY (MEDICAL > PHARMACIES)
    SeedMerchant("shoppers drug mart", "Shoppers Drug Mart", "medical", "pharmacies", "pharmacy", "Canadian pharmacy chain"),
    SeedMerchant("rexall", "Rexall", "medical", "pharmacies", "pharmacy", "Canadian pharmacy chain"),
    SeedMerchant("pharma plus", "Pharma Plus", "medical", "pharmacies", "pharmacy", "Canadian pharmacy chain"),

    # RETAIL (GENERAL_MERCHANDISE)
    SeedMerchant("canadian tire", "Canadian Tire", "general-merchandise", "superstores", "retail", "Canadian retail chain"),
    SeedMerchant("dollarama", "Dollarama", "general-merchandise", "discount-stores", "retail", "Canadian dollar store chain"),
    SeedMerchant("winners", "Winners", "general-merchandise", "department-stores", "retail", "Canadian discount retailer"),

    # ONLINE SERVICES (ENTERTAINMENT / GENERAL_SERVICES)
    SeedMerchant("amazon", "Amazon", "general-merchandise", "online-marketplaces", "e-commerce", "Online marketplace", website="amazon.ca"),
    SeedMerchant("netflix", "Netflix", "entertainment", "tv-video", "streaming", "Video streaming service", website="netflix.com"),
    SeedMerchant("spotify", "Spotify", "entertainment", "music-audio", "streaming", "Music streaming service", website="spotify.com"),

    # TRANSIT (TRANSPORTATION > PUBLIC_TRANSIT)
    SeedMerchant("ttc", "TTC", "transportation", "public-transit", "transit", "Toronto Transit Commission"),
    SeedMerchant("go transit", "GO Transit", "transportation", "public-transit", "transit", "Greater Toronto regional transit"),
    SeedMerchant("presto", "Presto", "transportation", "public-transit", "transit", "Ontario transit payment card"),

    # ENTERTAINMENT (ENTERTAINMENT)
    SeedMerchant("cineplex", "Cineplex", "entertainment", "movies", "entertainment", "Canadian movie theatre chain"),
    SeedMerchant("lcbo", "LCBO", "food-and-drink", "beer-wine-liquor", "alcohol", "Ontario liquor control board"),
    SeedMerchant("the beer store", "The Beer Store", "food-and-drink", "beer-wine-liquor", "alcohol", "Ontario beer retailer"),

    # UTILITIES (RENT_AND_UTILITIES)
    SeedMerchant("toronto hydro", "Toronto Hydro", "rent-and-utilities", "electric", "utility", "Toronto electricity provider"),
    SeedMerchant("hydro one", "Hydro One", "rent-and-utilities", "electric", "utility", "Ontario electricity provider"),
    SeedMerchant("enbridge", "Enbridge", "rent-and-utilities", "gas", "utility", "Natural gas provider"),

    # GYM / FITNESS (PERSONAL_CARE > GYMS_AND_FITNESS)
    SeedMerchant("goodlife fitness", "GoodLife Fitness", "personal-care", "gyms-and-fitness", "fitness", "Canadian gym chain"),
    SeedMerchant("planet fitness", "Planet Fitness", "personal-care", "gyms-and-fitness", "fitness", "Gym chain"),
]


def display_name(slug: str) -> str:
    """Title-case a slug, e.g. food-and-drink -> Food And Drink."""
    return " ".join(part.capitalize() for part in slug.split("-"))


def seed_knowledge_base(repository: "SQLKnowledgeRepository", merchants: Iterable[SeedMerchant] = SEED_MERCHANTS) -> Dict[str, int]:
    """Insert seed merchants and their categories. Existing merchant names are skipped."""
    counts = {"created": 0, "skipped": 0, "errors": 0}
    for merchant in merchants:
        try:
            if repository.get_entry(merchant.merchant_name) is not None:
                log.info("Seed merchant already present", extra={"merchant": merchant.merchant_name})
                counts["skipped"] += 1
                continue
            category_id, _ = repository.ensure_category(
                merchant.category_slug,
                merchant.subcategory_slug,
                name=display_name(merchant.category_slug),
                subcategory_name=display_name(merchant.subcategory_slug),
            )
            repository.upsert_entry(MerchantKnowledgeEntry(
                merchant_name=merchant.merchant_name,
                normalized_name=merchant.normalized_name,
                category_id=category_id,
                category_slug=merchant.category_slug,
                confidence_score=SEED_CONFIDENCE,
                source=KnowledgeSource.SEED,
                metadata=merchant.metadata(),
            ))
            counts["created"] += 1
        except SpendSortError as e:
            log.error("Failed to seed merchant", extra={"merchant": merchant.merchant_name, "error": str(e)})
            counts["errors"] += 1
    return counts


__all__ = ["SEED_CONFIDENCE", "SeedMerchant", "SEED_MERCHANTS", "display_name", "seed_knowledge_base"]
