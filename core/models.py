"""
core/models.py -- Static reference data shared by every layer.

BusinessType and Region are closed value sets with Swedish display names.
They are served read-only by the reference endpoints and validated on
sign-up. The enum value is the stable machine identifier; the display name
is presentation only and may change without a migration.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from dataclasses import dataclass
from enum import Enum


class BusinessType(str, Enum):
    retail = "retail"
    service = "service"
    manufacturing = "manufacturing"
    it = "it"
    healthcare = "healthcare"
    construction = "construction"
    finance = "finance"
    real_estate = "real_estate"
    transportation = "transportation"
    agriculture = "agriculture"
    education = "education"
    hospitality = "hospitality"
    tourism = "tourism"
    entertainment = "entertainment"
    media = "media"
    telecommunications = "telecommunications"
    energy = "energy"
    logistics = "logistics"
    legal = "legal"
    consulting = "consulting"
    marketing = "marketing"
    advertising = "advertising"
    food_and_beverage = "food_and_beverage"
    automotive = "automotive"
    pharmaceuticals = "pharmaceuticals"
    wholesale = "wholesale"
    technology = "technology"
    software_development = "software_development"
    ecommerce = "ecommerce"
    non_profit = "non_profit"
    insurance = "insurance"
    publishing = "publishing"
    aerospace = "aerospace"
    mining = "mining"
    textiles = "textiles"
    fashion = "fashion"
    biotechnology = "biotechnology"
    architecture = "architecture"
    environmental_services = "environmental_services"
    government = "government"
    research_and_development = "research_and_development"
    security = "security"
    event_management = "event_management"
    sports_and_fitness = "sports_and_fitness"
    arts_and_culture = "arts_and_culture"
    accounting = "accounting"
    human_resources = "human_resources"
    supply_chain = "supply_chain"
    electronics = "electronics"
    medical_devices = "medical_devices"
    cleaning_services = "cleaning_services"
    import_export = "import_export"
    construction_equipment = "construction_equipment"
    home_improvement = "home_improvement"
    app_development = "app_development"
    design = "design"
    photography = "photography"
    landscaping = "landscaping"
    property_management = "property_management"
    digital_marketing = "digital_marketing"
    retail_tech = "retail_tech"
    health_and_wellness = "health_and_wellness"


BUSINESS_TYPE_NAMES: dict[BusinessType, str] = {
    BusinessType.retail: "Detaljhandel",
    BusinessType.service: "Tjänsteföretag",
    BusinessType.manufacturing: "Tillverkning",
    BusinessType.it: "IT",
    BusinessType.healthcare: "Vård och Hälsa",
    BusinessType.construction: "Byggsektor",
    BusinessType.finance: "Finans",
    BusinessType.real_estate: "Fastigheter",
    BusinessType.transportation: "Transport",
    BusinessType.agriculture: "Jordbruk",
    BusinessType.education: "Utbildning",
    BusinessType.hospitality: "Hotell och Restaurang",
    BusinessType.tourism: "Turism",
    BusinessType.entertainment: "Underhållning",
    BusinessType.media: "Media",
    BusinessType.telecommunications: "Telekommunikation",
    BusinessType.energy: "Energi",
    BusinessType.logistics: "Logistik",
    BusinessType.legal: "Juridik",
    BusinessType.consulting: "Konsulttjänster",
    BusinessType.marketing: "Marknadsföring",
    BusinessType.advertising: "Reklam",
    BusinessType.food_and_beverage: "Livsmedel och Dryck",
    BusinessType.automotive: "Bilindustrin",
    BusinessType.pharmaceuticals: "Farmaceutiska produkter",
    BusinessType.wholesale: "Engros",
    BusinessType.technology: "Teknologi",
    BusinessType.software_development: "Programutveckling",
    BusinessType.ecommerce: "E-handel",
    BusinessType.non_profit: "Icke-vinstdrivande",
    BusinessType.insurance: "Försäkringar",
    BusinessType.publishing: "Publicering",
    BusinessType.aerospace: "Luftfart",
    BusinessType.mining: "Gruvdrift",
    BusinessType.textiles: "Textilier",
    BusinessType.fashion: "Mode",
    BusinessType.biotechnology: "Bioteknik",
    BusinessType.architecture: "Arkitektur",
    BusinessType.environmental_services: "Miljö- och hållbarhetstjänster",
    BusinessType.government: "Regering",
    BusinessType.research_and_development: "Forskning och Utveckling",
    BusinessType.security: "Säkerhet",
    BusinessType.event_management: "Eventhantering",
    BusinessType.sports_and_fitness: "Sport och Fitness",
    BusinessType.arts_and_culture: "Konst och Kultur",
    BusinessType.accounting: "Redovisning",
    BusinessType.human_resources: "Human Resources",
    BusinessType.supply_chain: "Supply Chain",
    BusinessType.electronics: "Elektronik",
    BusinessType.medical_devices: "Medicinteknik",
    BusinessType.cleaning_services: "Städtjänster",
    BusinessType.import_export: "Import och Export",
    BusinessType.construction_equipment: "Byggutrustning",
    BusinessType.home_improvement: "Hemförbättring",
    BusinessType.app_development: "Apputveckling",
    BusinessType.design: "Design",
    BusinessType.photography: "Fotografi",
    BusinessType.landscaping: "Landskapsvård",
    BusinessType.property_management: "Fastighetsförvaltning",
    BusinessType.digital_marketing: "Digital Marknadsföring",
    BusinessType.retail_tech: "Retail Tech",
    BusinessType.health_and_wellness: "Hälsa och Välmående",
}


class Region(str, Enum):
    """Swedish counties (län)."""

    stockholm = "stockholm"
    uppsala = "uppsala"
    sodermanland = "sodermanland"
    ostergotland = "ostergotland"
    jonkoping = "jonkoping"
    kronoberg = "kronoberg"
    kalmar = "kalmar"
    gotland = "gotland"
    blekinge = "blekinge"
    skane = "skane"
    halland = "halland"
    vastra_gotaland = "vastra_gotaland"
    varmland = "varmland"
    orebro = "orebro"
    vastmanland = "vastmanland"
    dalarna = "dalarna"
    gavleborg = "gavleborg"
    vasternorrland = "vasternorrland"
    jamtland = "jamtland"
    vasterbotten = "vasterbotten"
    norrbotten = "norrbotten"


REGION_NAMES: dict[Region, str] = {
    Region.stockholm: "Stockholms län",
    Region.uppsala: "Uppsala län",
    Region.sodermanland: "Södermanlands län",
    Region.ostergotland: "Östergötlands län",
    Region.jonkoping: "Jönköpings län",
    Region.kronoberg: "Kronobergs län",
    Region.kalmar: "Kalmar län",
    Region.gotland: "Gotlands län",
    Region.blekinge: "Blekinge län",
    Region.skane: "Skåne län",
    Region.halland: "Hallands län",
    Region.vastra_gotaland: "Västra Götalands län",
    Region.varmland: "Värmlands län",
    Region.orebro: "Örebro län",
    Region.vastmanland: "Västmanlands län",
    Region.dalarna: "Dalarnas län",
    Region.gavleborg: "Gävleborgs län",
    Region.vasternorrland: "Västernorrlands län",
    Region.jamtland: "Jämtlands län",
    Region.vasterbotten: "Västerbottens län",
    Region.norrbotten: "Norrbottens län",
}


@dataclass
class ReferenceItem:
    value: str
    display_name: str


def business_types() -> list[ReferenceItem]:
    return [ReferenceItem(value=b.value, display_name=BUSINESS_TYPE_NAMES[b]) for b in BusinessType]


def regions() -> list[ReferenceItem]:
    return [ReferenceItem(value=r.value, display_name=REGION_NAMES[r]) for r in Region]
