"""
SIC code reference data for autocomplete and export descriptions
"""
import re
from typing import Dict, List

# code -> (description, search keywords)
SIC_CODES = {
    "62010": ("Computer programming activities", ["software", "programming", "coding", "developer", "app", "application"]),
    "62020": ("Computer consultancy activities", ["software", "consulting", "IT consulting", "technology consulting"]),
    "62090": ("Other information technology and computer service activities", ["IT", "technology", "tech support", "IT services"]),
    "63110": ("Data processing, hosting and related activities", ["data", "hosting", "cloud", "server", "data center"]),
    "63120": ("Web portals", ["web", "portal", "website", "online platform"]),
    "64110": ("Central banking", ["bank", "banking", "central bank"]),
    "64191": ("Banks", ["bank", "banking", "commercial bank"]),
    "64205": ("Activities of financial services holding companies", ["finance", "financial", "holding", "investment"]),
    "64209": ("Other activities of holding companies", ["holding", "investment", "parent company"]),
    "64301": ("Activities of investment trusts", ["investment", "trust", "fund"]),
    "64302": ("Activities of unit trusts", ["investment", "unit trust", "fund"]),
    "64303": ("Activities of venture and development capital companies", ["venture", "VC", "venture capital", "startup funding"]),
    "64910": ("Financial leasing", ["leasing", "finance lease", "asset finance"]),
    "64921": ("Credit granting by non-deposit taking finance houses", ["credit", "loan", "lending", "finance"]),
    "64922": ("Activities of mortgage finance companies", ["mortgage", "home loan", "property finance"]),
    "64929": ("Other credit granting", ["credit", "loan", "lending"]),
    "64991": ("Security dealing on own account", ["trading", "securities", "stocks", "bonds"]),
    "64992": ("Factoring", ["factoring", "invoice finance", "receivables"]),
    "64999": ("Other financial service activities", ["financial services", "fintech", "payment"]),
    "65110": ("Life insurance", ["insurance", "life insurance", "life cover"]),
    "65120": ("Non-life insurance", ["insurance", "general insurance", "property insurance"]),
    "65201": ("Life reinsurance", ["reinsurance", "life reinsurance"]),
    "65202": ("Non-life reinsurance", ["reinsurance", "general reinsurance"]),
    "68100": ("Buying and selling of own real estate", ["real estate", "property", "property development"]),
    "68201": ("Renting and operating of Housing Association real estate", ["housing", "rental", "housing association"]),
    "68202": ("Letting and operating of conference and exhibition centres", ["conference", "exhibition", "venue"]),
    "68209": ("Other letting and operating of own or leased real estate", ["property", "rental", "landlord", "letting"]),
    "68310": ("Real estate agencies", ["estate agent", "property agent", "real estate agency"]),
    "68320": ("Management of real estate on a fee or contract basis", ["property management", "estate management"]),
    "47110": ("Retail sale in non-specialised stores with food, beverages or tobacco predominating", ["retail", "shop", "store", "supermarket", "grocery"]),
    "47910": ("Retail sale via mail order houses or via Internet", ["ecommerce", "e-commerce", "online retail", "online shop", "mail order"]),
    "47990": ("Other retail sale not in stores, stalls or markets", ["retail", "direct sales", "home shopping"]),
    "10110": ("Processing and preserving of meat", ["manufacturing", "meat", "food processing"]),
    "10200": ("Processing and preserving of fish, crustaceans and molluscs", ["manufacturing", "fish", "seafood", "food processing"]),
    "10710": ("Manufacture of bread; manufacture of fresh pastry goods and cakes", ["bakery", "bread", "manufacturing", "food"]),
    "26200": ("Manufacture of computers and peripheral equipment", ["manufacturing", "computer", "hardware", "electronics"]),
    "26400": ("Manufacture of consumer electronics", ["manufacturing", "electronics", "consumer electronics"]),
    "69101": ("Barristers at law", ["legal", "law", "barrister", "lawyer"]),
    "69102": ("Solicitors", ["legal", "law", "solicitor", "lawyer"]),
    "69109": ("Activities of patent and copyright agents; other legal activities", ["legal", "patent", "copyright", "intellectual property"]),
    "69201": ("Accounting and auditing activities", ["accounting", "accountant", "audit", "auditing"]),
    "69202": ("Bookkeeping activities", ["bookkeeping", "accounting", "financial records"]),
    "69203": ("Tax consultancy", ["tax", "taxation", "tax consultant", "tax advisor"]),
    "70100": ("Activities of head offices", ["management", "head office", "corporate", "headquarters"]),
    "70210": ("Public relations and communication activities", ["PR", "public relations", "communications", "media relations"]),
    "70221": ("Financial management", ["financial management", "CFO services", "finance director"]),
    "70229": ("Management consultancy activities other than financial management", ["consulting", "consultancy", "management consulting", "business consulting"]),
    "73110": ("Advertising agencies", ["advertising", "marketing", "ad agency", "creative agency"]),
    "73120": ("Media representation", ["media", "advertising sales", "media planning"]),
    "73200": ("Market research and public opinion polling", ["market research", "research", "polling", "survey"]),
    "86101": ("Hospital activities", ["hospital", "healthcare", "medical", "health"]),
    "86102": ("Medical nursing home activities", ["nursing home", "care home", "healthcare"]),
    "86210": ("General medical practice activities", ["GP", "doctor", "medical practice", "healthcare"]),
    "86220": ("Specialist medical practice activities", ["specialist", "medical", "healthcare", "consultant"]),
    "86230": ("Dental practice activities", ["dental", "dentist", "dentistry", "oral health"]),
    "85100": ("Pre-primary education", ["nursery", "pre-school", "early years", "education"]),
    "85200": ("Primary education", ["primary school", "elementary", "education"]),
    "85310": ("General secondary education", ["secondary school", "high school", "education"]),
    "85320": ("Technical and vocational secondary education", ["vocational", "technical education", "training"]),
    "85410": ("Post-secondary non-tertiary education", ["further education", "college", "education"]),
    "85421": ("First-degree level higher education", ["university", "degree", "higher education"]),
    "85422": ("Post-graduate level higher education", ["postgraduate", "masters", "PhD", "higher education"]),
    "85590": ("Other education", ["training", "courses", "education", "tutoring"]),
    "41100": ("Development of building projects", ["construction", "property development", "building", "developer"]),
    "41201": ("Construction of commercial buildings", ["construction", "commercial building", "contractor"]),
    "41202": ("Construction of domestic buildings", ["construction", "house building", "residential", "contractor"]),
    "43210": ("Electrical installation", ["electrical", "electrician", "wiring", "installation"]),
    "43220": ("Plumbing, heat and air-conditioning installation", ["plumbing", "plumber", "heating", "HVAC"]),
    "49100": ("Passenger rail transport, interurban", ["rail", "train", "railway", "transport"]),
    "49200": ("Freight rail transport", ["freight", "rail freight", "cargo", "transport"]),
    "49310": ("Urban and suburban passenger land transport", ["bus", "public transport", "metro", "transport"]),
    "49320": ("Taxi operation", ["taxi", "cab", "private hire", "transport"]),
    "49410": ("Freight transport by road", ["trucking", "haulage", "logistics", "transport"]),
    "49420": ("Removal services", ["removal", "moving", "relocation", "transport"]),
    "52100": ("Warehousing and storage", ["warehouse", "storage", "logistics", "distribution"]),
    "53100": ("Postal activities under universal service obligation", ["postal", "mail", "post office", "delivery"]),
    "53201": ("Licensed carriers", ["courier", "parcel", "delivery", "logistics"]),
    "53202": ("Unlicensed carriers", ["courier", "delivery", "last mile", "logistics"]),
}

SIC_CODE_PATTERN = re.compile(r'^\d{4,5}$')


def search_sic_codes(query: str) -> List[str]:
    """
    Find SIC codes for a free-text query.
    A 4-5 digit query is taken as a code; otherwise descriptions and keywords are matched.
    """
    normalized = query.lower().strip()
    if not normalized:
        return []
    if SIC_CODE_PATTERN.match(normalized):
        return [normalized]

    matched = []
    for code, (description, keywords) in SIC_CODES.items():
        if normalized in description.lower():
            matched.append(code)
            continue
        for keyword in keywords:
            keyword = keyword.lower()
            if normalized in keyword or keyword in normalized:
                matched.append(code)
                break
    return matched


def get_sic_description(code: str) -> str:
    entry = SIC_CODES.get(code)
    return entry[0] if entry else code


def get_all_sic_codes() -> List[Dict[str, str]]:
    """Get all SIC codes as a list of dicts for the frontend."""
    return [
        {'code': code, 'description': description}
        for code, (description, _) in sorted(SIC_CODES.items())
    ]
