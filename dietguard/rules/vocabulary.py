"""Category vocabulary: maps category codes and item names to matchable terms.

Terms are lowercase. Ingredient text in stored plans is mostly Dutch, so
every category carries Dutch forms next to the English ones. Forbidden
categories match whole words, so common compounds ("volkorenbrood",
"kipfilet") are listed as terms of their own.
"""

from typing import Dict, Iterable, List


CATEGORY_TERMS: Dict[str, List[str]] = {
    # Forbidden-category vocabularies
    "grains": [
        "rijst", "pasta", "brood", "bloem", "tarwe", "rogge", "gerst", "haver",
        "couscous", "bulgur", "quinoa", "spelt", "noedels", "maïsmeel",
        "volkorenbrood", "stokbrood", "roggebrood", "tarwebloem", "rijstnoedels",
        "rice", "bread", "flour", "wheat", "barley", "rye", "noodles", "oatmeal",
    ],
    "dairy": [
        "melk", "kaas", "yoghurt", "boter", "room", "kwark", "karnemelk",
        "koemelk", "roomboter", "slagroom", "geitenkaas",
        "milk", "cheese", "butter", "yogurt", "cream",
    ],
    "legumes": [
        "bonen", "linzen", "kikkererwten", "erwten", "sojabonen", "tofu",
        "tempeh", "pinda", "pindakaas", "beans", "lentils", "chickpeas", "peas", "soy", "peanut",
    ],
    "processed_sugar": [
        "suiker", "rietsuiker", "glucosestroop", "siroop", "snoep",
        "sugar", "syrup", "candy",
    ],
    "sugar": [
        "suiker", "honing", "siroop", "agavesiroop", "ahornsiroop",
        "sugar", "honey", "syrup",
    ],
    "refined_sugar": [
        "suiker", "basterdsuiker", "poedersuiker", "glucosestroop",
        "sugar", "icing sugar", "corn syrup",
    ],
    "starchy_vegetables": [
        "aardappel", "aardappelen", "pastinaak", "maïs", "zoete aardappel", "cassave",
        "potato", "parsnip", "corn", "cassava",
    ],
    "processed_foods": [
        "worst", "frikandel", "kroket", "chips", "kant-en-klaar",
        "sausage", "hot dog", "ready meal",
    ],
    "meat": [
        "vlees", "rundvlees", "varkensvlees", "gehakt", "spek", "biefstuk",
        "lamsvlees", "rundergehakt", "meat", "beef", "pork", "bacon", "steak",
    ],
    "fish": [
        "vis", "zalm", "zalmfilet", "tonijn", "kabeljauw", "makreel", "haring", "garnalen",
        "fish", "salmon", "tuna", "shrimp", "mackerel",
    ],
    "poultry": ["kip", "kipfilet", "kippendij", "kalkoen", "eend", "chicken", "turkey", "duck"],
    "eggs": ["ei", "eieren", "eigeel", "eggs", "egg yolk"],
    "honey": ["honing", "honey"],
    # Allowed / required vocabularies
    "vegetables": [
        "spinazie", "boerenkool", "sla", "snijbiet", "broccoli", "bloemkool",
        "kool", "spruitjes", "ui", "knoflook", "prei", "wortel", "biet",
        "paprika", "pompoen", "courgette", "tomaat", "komkommer",
        "spinach", "kale", "lettuce", "cabbage", "onion", "carrot", "tomato",
        "zucchini", "cucumber",
    ],
    "fruits": [
        "appel", "peer", "banaan", "bessen", "sinaasappel", "aardbei",
        "apple", "pear", "banana", "berries", "orange", "strawberry",
    ],
    "whole_grains": ["volkoren", "havermout", "zilvervliesrijst", "whole grain", "brown rice"],
    "olive_oil": ["olijfolie", "olive oil"],
    "nuts": [
        "noten", "amandel", "walnoot", "cashew", "hazelnoot",
        "nuts", "almond", "walnut", "hazelnut",
    ],
    "seeds": ["zaden", "chiazaad", "lijnzaad", "pompoenpitten", "seeds", "chia", "flaxseed"],
}


ITEM_SYNONYMS: Dict[str, List[str]] = {
    # Organ meats
    "liver": ["lever"],
    "heart": ["hart"],
    "kidney": ["nier"],
    # Seaweed
    "seaweed": ["zeewier"],
    "kelp": [],
    "nori": [],
    "wakame": [],
    # Leafy greens
    "spinach": ["spinazie"],
    "kale": ["boerenkool"],
    "lettuce": ["sla"],
    "chard": ["snijbiet"],
    "collard_greens": ["bladkool"],
    "arugula": ["rucola"],
    "bok_choy": ["paksoi"],
    # Sulfur-rich vegetables
    "broccoli": [],
    "cauliflower": ["bloemkool"],
    "cabbage": ["kool"],
    "brussels_sprouts": ["spruitjes"],
    "onion": ["ui"],
    "garlic": ["knoflook"],
    "leek": ["prei"],
    # Colored vegetables
    "carrot": ["wortel"],
    "beet": ["biet"],
    "bell_pepper": ["paprika"],
    "sweet_potato": ["zoete aardappel"],
    "pumpkin": ["pompoen"],
    "squash": [],
    "tomato": ["tomaat"],
    # Other items used by diet builders
    "avocado": [],
    "tofu": [],
    "tempeh": [],
    "seitan": [],
    # Common allergens
    "peanut": ["pinda", "pindakaas"],
    "peanuts": ["pinda", "pindakaas"],
    "shellfish": ["schaaldieren", "garnalen", "kreeft"],
    "gluten": ["tarwe", "bloem"],
    "lactose": ["melk"],
    "mushrooms": ["paddenstoelen", "champignons"],
}


def item_terms(item: str) -> List[str]:
    """Return the lowercase term and its synonyms for a single item name."""
    base = item.strip().lower()
    terms = [base]
    readable = base.replace("_", " ")
    if readable != base:
        terms.append(readable)
    terms.extend(ITEM_SYNONYMS.get(base, []))
    return _dedupe(terms)


def category_terms(category: str) -> List[str]:
    """Return the terms that identify a category, or the category name itself."""
    code = category.strip().lower()
    if code in CATEGORY_TERMS:
        return list(CATEGORY_TERMS[code])
    return item_terms(code)


def expand_terms(items: Iterable[str]) -> List[str]:
    """Expand item names and category codes into a flat list of matchable terms.

    Example:
        >>> expand_terms(["olive_oil", "avocado"])
        ['olijfolie', 'olive oil', 'avocado']
    """
    terms: List[str] = []
    for item in items:
        code = item.strip().lower()
        if code in CATEGORY_TERMS:
            terms.extend(CATEGORY_TERMS[code])
        else:
            terms.extend(item_terms(code))
    return _dedupe(terms)


def _dedupe(terms: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for term in terms:
        if term and term not in seen:
            seen.add(term)
            result.append(term)
    return result
