"""
Keyword rules for deterministic transaction categorization.

Rules are matched against the transaction description and merchant name.
Higher priority rules are checked first; rules with equal priority keep their
declaration order. Priority values are assigned by hand per rule.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from spendsort.utils.exceptions import RuleTableError


@dataclass(frozen=True)
class CategorizationRule:
    keywords: Tuple[str, ...]
    category_slug: str
    subcategory_slug: str
    confidence: float
    priority: int
    description: Optional[str] = None

    def __post_init__(self):
        if not self.keywords:
            raise RuleTableError(f"Rule for '{self.subcategory_slug}' has no keywords")
        if not 0.0 < self.confidence <= 1.0:
            raise RuleTableError(
                f"Rule for '{self.subcategory_slug}' has confidence {self.confidence} outside (0, 1]"
            )
        # Accept any iterable of keywords but store an ordered tuple
        object.__setattr__(self, "keywords", tuple(self.keywords))


DEFAULT_RULES: Tuple[CategorizationRule, ...] = (
    # INCOME
    CategorizationRule(
        keywords=('payroll', 'salary', 'wages', 'pay deposit', 'direct deposit', 'employment income'),
        category_slug='income',
        subcategory_slug='income-wages',
        confidence=0.95,
        priority=100,
        description='Salary and wages from employment',
    ),
    CategorizationRule(
        keywords=('dividend', 'dividends', 'div payment'),
        category_slug='income',
        subcategory_slug='income-dividends',
        confidence=0.95,
        priority=100,
        description='Dividend income from investments',
    ),
    CategorizationRule(
        keywords=('interest', 'int earned', 'interest income'),
        category_slug='income',
        subcategory_slug='income-interest-earned',
        confidence=0.90,
        priority=90,
        description='Interest earned on accounts',
    ),
    CategorizationRule(
        keywords=('tax refund', 'cra refund', 'irs refund', 'revenue canada'),
        category_slug='income',
        subcategory_slug='income-tax-refund',
        confidence=0.95,
        priority=100,
        description='Tax refunds',
    ),

    # FOOD & DRINK
    CategorizationRule(
        keywords=('grocery', 'groceries', 'supermarket', 'loblaws', 'sobeys', 'metro', 'food basics', 'no frills', 'walmart supercenter', 'safeway', 'fortinos', 'zehrs'),
        category_slug='food-and-drink',
        subcategory_slug='food-and-drink-groceries',
        confidence=0.90,
        priority=80,
        description='Grocery stores',
    ),
    CategorizationRule(
        keywords=('restaurant', 'cafe', 'diner', 'bistro', 'grill', 'pizza', 'sushi', 'burger', 'chicken', 'chinese food', 'indian food', 'thai food', 'mexican food'),
        category_slug='food-and-drink',
        subcategory_slug='food-and-drink-restaurants',
        confidence=0.85,
        priority=70,
        description='Restaurants and dining',
    ),
    CategorizationRule(
        keywords=('mcdonalds', 'mcdonald', 'burger king', 'wendy', 'taco bell', 'kfc', 'subway', 'tim hortons', 'a&w', 'harvey', 'popeyes', 'five guys'),
        category_slug='food-and-drink',
        subcategory_slug='food-and-drink-fast-food',
        confidence=0.95,
        priority=90,
        description='Fast food chains',
    ),
    CategorizationRule(
        keywords=('starbucks', 'coffee', 'tim horton', 'second cup', 'cafe', 'espresso'),
        category_slug='food-and-drink',
        subcategory_slug='food-and-drink-coffee',
        confidence=0.90,
        priority=85,
        description='Coffee shops',
    ),
    CategorizationRule(
        keywords=('bar', 'pub', 'brewery', 'lcbo', 'beer store', 'liquor', 'wine shop', 'alcohol'),
        category_slug='food-and-drink',
        subcategory_slug='food-and-drink-bar',
        confidence=0.85,
        priority=75,
        description='Bars and alcohol purchases',
    ),

    # TRANSPORTATION
    CategorizationRule(
        keywords=('gas station', 'petro-canada', 'shell', 'esso', 'chevron', 'husky', 'mobil', 'sunoco', 'fuel', 'gasoline'),
        category_slug='transportation',
        subcategory_slug='transportation-gas',
        confidence=0.95,
        priority=90,
        description='Gas stations',
    ),
    CategorizationRule(
        keywords=('parking', 'impark', "park'n fly", 'easypark'),
        category_slug='transportation',
        subcategory_slug='transportation-parking',
        confidence=0.95,
        priority=90,
        description='Parking fees',
    ),
    CategorizationRule(
        keywords=('uber', 'lyft', 'taxi', 'cab', 'ride share'),
        category_slug='transportation',
        subcategory_slug='transportation-taxi',
        confidence=0.95,
        priority=95,
        description='Rideshare and taxi services',
    ),
    CategorizationRule(
        keywords=('ttc', 'go transit', 'presto', 'transit', 'subway', 'bus pass', 'metro pass'),
        category_slug='transportation',
        subcategory_slug='transportation-public',
        confidence=0.95,
        priority=90,
        description='Public transportation',
    ),
    CategorizationRule(
        keywords=('canadian tire', 'auto parts', 'oil change', 'car wash', 'mr lube', 'jiffy lube'),
        category_slug='transportation',
        subcategory_slug='transportation-maintenance',
        confidence=0.80,
        priority=70,
        description='Vehicle maintenance',
    ),

    # ENTERTAINMENT
    CategorizationRule(
        keywords=('netflix', 'disney+', 'prime video', 'hbo', 'crave', 'spotify', 'apple music', 'youtube premium'),
        category_slug='entertainment',
        subcategory_slug='entertainment-tv-streaming',
        confidence=0.95,
        priority=95,
        description='Streaming services',
    ),
    CategorizationRule(
        keywords=('cineplex', 'movie', 'cinema', 'theater', 'theatre', 'imax'),
        category_slug='entertainment',
        subcategory_slug='entertainment-movies',
        confidence=0.95,
        priority=90,
        description='Movie theaters',
    ),
    CategorizationRule(
        keywords=('steam', 'playstation', 'xbox', 'nintendo', 'gaming', 'video game'),
        category_slug='entertainment',
        subcategory_slug='entertainment-video-games',
        confidence=0.90,
        priority=85,
        description='Video games and gaming',
    ),
    CategorizationRule(
        keywords=('concert', 'ticketmaster', 'live nation', 'stubhub', 'sporting event', 'game ticket'),
        category_slug='entertainment',
        subcategory_slug='entertainment-sporting-events',
        confidence=0.85,
        priority=80,
        description='Concerts and sporting events',
    ),

    # GENERAL MERCHANDISE
    CategorizationRule(
        keywords=('amazon', 'ebay', 'etsy', 'aliexpress'),
        category_slug='general-merchandise',
        subcategory_slug='general-merchandise-online',
        confidence=0.90,
        priority=85,
        description='Online marketplaces',
    ),
    CategorizationRule(
        keywords=('best buy', 'future shop', 'staples', 'microsoft store', 'apple store'),
        category_slug='general-merchandise',
        subcategory_slug='general-merchandise-electronics',
        confidence=0.90,
        priority=85,
        description='Electronics stores',
    ),
    CategorizationRule(
        keywords=('walmart', 'target', 'costco', 'winners', 'marshalls', 'homesense', 'hudson bay'),
        category_slug='general-merchandise',
        subcategory_slug='general-merchandise-department-stores',
        confidence=0.85,
        priority=75,
        description='Department stores',
    ),
    CategorizationRule(
        keywords=('h&m', 'zara', 'gap', 'old navy', 'sport chek', 'nike', 'adidas', 'lululemon', 'clothing'),
        category_slug='general-merchandise',
        subcategory_slug='general-merchandise-clothing',
        confidence=0.85,
        priority=75,
        description='Clothing stores',
    ),
    CategorizationRule(
        keywords=('chapters', 'indigo', 'coles', 'bookstore', 'book'),
        category_slug='general-merchandise',
        subcategory_slug='general-merchandise-bookstores',
        confidence=0.90,
        priority=85,
        description='Bookstores',
    ),
    CategorizationRule(
        keywords=('petsmart', 'petco', 'pet valu', 'pet food', 'pet supplies'),
        category_slug='general-merchandise',
        subcategory_slug='general-merchandise-pet-supplies',
        confidence=0.95,
        priority=90,
        description='Pet supplies',
    ),

    # RENT & UTILITIES
    CategorizationRule(
        keywords=('rent payment', 'rent', 'rental payment', 'apartment', 'property management'),
        category_slug='rent-and-utilities',
        subcategory_slug='rent-and-utilities-rent',
        confidence=0.90,
        priority=85,
        description='Rent payments',
    ),
    CategorizationRule(
        keywords=('hydro', 'electricity', 'electric', 'power', 'gas bill', 'enbridge', 'toronto hydro', 'hydro one'),
        category_slug='rent-and-utilities',
        subcategory_slug='rent-and-utilities-electric-gas',
        confidence=0.95,
        priority=90,
        description='Electricity and gas utilities',
    ),
    CategorizationRule(
        keywords=('rogers', 'bell', 'telus', 'fido', 'freedom mobile', 'shaw', 'phone bill', 'mobile', 'wireless'),
        category_slug='rent-and-utilities',
        subcategory_slug='rent-and-utilities-phone',
        confidence=0.95,
        priority=90,
        description='Phone and wireless services',
    ),
    CategorizationRule(
        keywords=('internet', 'cable', 'cable tv', 'broadband'),
        category_slug='rent-and-utilities',
        subcategory_slug='rent-and-utilities-internet-cable',
        confidence=0.90,
        priority=85,
        description='Internet and cable services',
    ),
    CategorizationRule(
        keywords=('water bill', 'water', 'sewage', 'waste management', 'garbage'),
        category_slug='rent-and-utilities',
        subcategory_slug='rent-and-utilities-water',
        confidence=0.95,
        priority=90,
        description='Water and sewage',
    ),

    # MEDICAL
    CategorizationRule(
        keywords=('pharmacy', 'shoppers drug mart', 'rexall', 'pharma plus', 'prescription'),
        category_slug='medical',
        subcategory_slug='medical-pharmacy',
        confidence=0.95,
        priority=90,
        description='Pharmacies',
    ),
    CategorizationRule(
        keywords=('dentist', 'dental', 'orthodontist'),
        category_slug='medical',
        subcategory_slug='medical-dental',
        confidence=0.95,
        priority=90,
        description='Dental care',
    ),
    CategorizationRule(
        keywords=('optometrist', 'eye exam', 'glasses', 'eyeglasses', 'contact lens', 'lenscrafters'),
        category_slug='medical',
        subcategory_slug='medical-eye-care',
        confidence=0.95,
        priority=90,
        description='Eye care',
    ),
    CategorizationRule(
        keywords=('veterinarian', 'vet clinic', 'animal hospital', 'pet health'),
        category_slug='medical',
        subcategory_slug='medical-veterinary',
        confidence=0.95,
        priority=90,
        description='Veterinary services',
    ),

    # PERSONAL CARE
    CategorizationRule(
        keywords=('gym', 'fitness', 'goodlife', 'planet fitness', 'yoga', 'crossfit'),
        category_slug='personal-care',
        subcategory_slug='personal-care-gym',
        confidence=0.95,
        priority=90,
        description='Gyms and fitness centers',
    ),
    CategorizationRule(
        keywords=('salon', 'hair', 'barber', 'haircut', 'beauty', 'spa', 'massage', 'nail'),
        category_slug='personal-care',
        subcategory_slug='personal-care-hair-beauty',
        confidence=0.90,
        priority=85,
        description='Hair and beauty services',
    ),
    CategorizationRule(
        keywords=('laundry', 'dry clean', 'dry cleaning'),
        category_slug='personal-care',
        subcategory_slug='personal-care-laundry',
        confidence=0.95,
        priority=90,
        description='Laundry and dry cleaning',
    ),

    # BANK FEES
    CategorizationRule(
        keywords=('monthly fee', 'service charge', 'maintenance fee', 'account fee', 'banking fee'),
        category_slug='bank-fees',
        subcategory_slug='bank-fees-service-charge',
        confidence=0.95,
        priority=100,
        description='Monthly service charges',
    ),
    CategorizationRule(
        keywords=('atm fee', 'atm withdrawal'),
        category_slug='bank-fees',
        subcategory_slug='bank-fees-atm',
        confidence=0.95,
        priority=100,
        description='ATM fees',
    ),
    CategorizationRule(
        keywords=('overdraft', 'nsf', 'insufficient funds'),
        category_slug='bank-fees',
        subcategory_slug='bank-fees-overdraft',
        confidence=0.95,
        priority=100,
        description='Overdraft fees',
    ),
    CategorizationRule(
        keywords=('foreign transaction', 'foreign exchange', 'fx fee'),
        category_slug='bank-fees',
        subcategory_slug='bank-fees-foreign-transaction',
        confidence=0.95,
        priority=100,
        description='Foreign transaction fees',
    ),
    CategorizationRule(
        keywords=('interest charge', 'finance charge', 'credit card interest'),
        category_slug='bank-fees',
        subcategory_slug='bank-fees-interest-charge',
        confidence=0.95,
        priority=100,
        description='Interest charges',
    ),

    # LOAN PAYMENTS
    CategorizationRule(
        keywords=('mortgage', 'mortgage payment'),
        category_slug='loan-payments',
        subcategory_slug='loan-payments-mortgage',
        confidence=0.95,
        priority=100,
        description='Mortgage payments',
    ),
    CategorizationRule(
        keywords=('car payment', 'auto loan', 'vehicle payment'),
        category_slug='loan-payments',
        subcategory_slug='loan-payments-car',
        confidence=0.95,
        priority=100,
        description='Car loan payments',
    ),
    CategorizationRule(
        keywords=('credit card payment', 'cc payment', 'visa payment', 'mastercard payment'),
        category_slug='loan-payments',
        subcategory_slug='loan-payments-credit-card',
        confidence=0.95,
        priority=100,
        description='Credit card payments',
    ),
    CategorizationRule(
        keywords=('student loan', 'osap', 'nslsc'),
        category_slug='loan-payments',
        subcategory_slug='loan-payments-student-loan',
        confidence=0.95,
        priority=100,
        description='Student loan payments',
    ),

    # TRANSFERS
    CategorizationRule(
        keywords=('e-transfer', 'etransfer', 'interac transfer', 'money transfer'),
        category_slug='transfer-out',
        subcategory_slug='transfer-out-account-transfer',
        confidence=0.90,
        priority=80,
        description='E-transfers and money transfers',
    ),
    CategorizationRule(
        keywords=('withdrawal', 'cash withdrawal', 'atm withdrawal'),
        category_slug='transfer-out',
        subcategory_slug='transfer-out-withdrawal',
        confidence=0.85,
        priority=75,
        description='Cash withdrawals',
    ),

    # GOVERNMENT & NON-PROFIT
    CategorizationRule(
        keywords=('charity', 'donation', 'red cross', 'unicef', 'salvation army', 'food bank'),
        category_slug='government-and-non-profit',
        subcategory_slug='government-and-non-profit-donation',
        confidence=0.90,
        priority=85,
        description='Charitable donations',
    ),
    CategorizationRule(
        keywords=('tax payment', 'cra payment', 'income tax', 'property tax'),
        category_slug='government-and-non-profit',
        subcategory_slug='government-and-non-profit-tax-payment',
        confidence=0.95,
        priority=95,
        description='Tax payments',
    ),

    # GENERAL SERVICES
    CategorizationRule(
        keywords=('insurance', 'life insurance', 'car insurance', 'home insurance', 'health insurance'),
        category_slug='general-services',
        subcategory_slug='general-services-insurance',
        confidence=0.95,
        priority=90,
        description='Insurance payments',
    ),
    CategorizationRule(
        keywords=('daycare', 'childcare', 'babysitter', 'nanny'),
        category_slug='general-services',
        subcategory_slug='general-services-childcare',
        confidence=0.95,
        priority=90,
        description='Childcare services',
    ),
    CategorizationRule(
        keywords=('tuition', 'school', 'university', 'college', 'course fee'),
        category_slug='general-services',
        subcategory_slug='general-services-education',
        confidence=0.90,
        priority=85,
        description='Education and tuition',
    ),
    CategorizationRule(
        keywords=('lawyer', 'attorney', 'legal', 'accounting', 'accountant'),
        category_slug='general-services',
        subcategory_slug='general-services-legal',
        confidence=0.90,
        priority=85,
        description='Legal and accounting services',
    ),

    # HOME IMPROVEMENT
    CategorizationRule(
        keywords=('home depot', 'lowes', 'rona', 'home hardware', 'hardware store'),
        category_slug='home-improvement',
        subcategory_slug='home-improvement-hardware',
        confidence=0.95,
        priority=90,
        description='Hardware stores',
    ),
    CategorizationRule(
        keywords=('ikea', 'furniture', 'sofa', 'bed', 'table', 'chair'),
        category_slug='home-improvement',
        subcategory_slug='home-improvement-furniture',
        confidence=0.90,
        priority=85,
        description='Furniture stores',
    ),

    # TRAVEL
    CategorizationRule(
        keywords=('air canada', 'westjet', 'flight', 'airline', 'airport'),
        category_slug='travel',
        subcategory_slug='travel-flights',
        confidence=0.95,
        priority=90,
        description='Flight bookings',
    ),
    CategorizationRule(
        keywords=('hotel', 'motel', 'airbnb', 'booking.com', 'hotels.com', 'expedia', 'marriott', 'hilton'),
        category_slug='travel',
        subcategory_slug='travel-lodging',
        confidence=0.95,
        priority=90,
        description='Hotel and lodging',
    ),
    CategorizationRule(
        keywords=('enterprise', 'hertz', 'avis', 'budget', 'car rental'),
        category_slug='travel',
        subcategory_slug='travel-rental-car',
        confidence=0.95,
        priority=90,
        description='Car rentals',
    ),
)

__all__ = ["CategorizationRule", "DEFAULT_RULES"]
