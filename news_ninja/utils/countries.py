"""Country catalogue and language helpers."""

from typing import Dict, List, NamedTuple


class Country(NamedTuple):
    code: str
    name: str
    language: str
    serpapi_slug: str


# 預設處理順序 (CLI 取前 N 個)
DEFAULT_COUNTRIES: List[Country] = [
    Country("US", "United States", "en", "united_states"),
    Country("IT", "Italy", "it", "italy"),
    Country("ES", "Spain", "es", "spain"),
    Country("FR", "France", "fr", "france"),
    Country("DE", "Germany", "de", "germany"),
    Country("GB", "United Kingdom", "en", "united_kingdom"),
    Country("BR", "Brazil", "pt", "brazil"),
    Country("JP", "Japan", "ja", "japan"),
    Country("CA", "Canada", "en", "canada"),
    Country("AU", "Australia", "en", "australia"),
    Country("MX", "Mexico", "es", "mexico"),
    Country("IN", "India", "en", "india"),
    Country("KR", "South Korea", "ko", "south_korea"),
    Country("RU", "Russia", "ru", "russia"),
    Country("CN", "China", "zh", "china"),
    Country("NL", "Netherlands", "nl", "netherlands"),
    Country("SE", "Sweden", "sv", "sweden"),
    Country("PL", "Poland", "pl", "poland"),
    Country("TR", "Turkey", "tr", "turkey"),
    Country("AR", "Argentina", "es", "argentina"),
]

COUNTRIES_BY_CODE: Dict[str, Country] = {c.code: c for c in DEFAULT_COUNTRIES}

COUNTRY_LANGUAGE_MAP: Dict[str, str] = {
    # English-speaking
    "US": "en", "GB": "en", "CA": "en", "AU": "en", "NZ": "en", "IE": "en",
    "IN": "en", "PK": "en", "BD": "en", "PH": "en", "SG": "en", "ZA": "en",
    "NG": "en", "KE": "en",
    # Romance
    "IT": "it", "ES": "es", "MX": "es", "AR": "es", "CO": "es", "CL": "es",
    "PE": "es", "VE": "es", "FR": "fr", "BE": "fr", "PT": "pt", "BR": "pt",
    "RO": "ro",
    # Germanic
    "DE": "de", "AT": "de", "CH": "de", "NL": "nl", "SE": "sv", "NO": "no",
    "DK": "da",
    # Asia
    "JP": "ja", "CN": "zh", "TW": "zh", "HK": "zh", "KR": "ko", "TH": "th",
    "VN": "vi", "ID": "id", "MY": "ms",
    # Middle East
    "SA": "ar", "AE": "ar", "EG": "ar", "IL": "he", "TR": "tr", "IR": "fa",
    # Eastern Europe
    "RU": "ru", "UA": "uk", "PL": "pl", "CZ": "cs", "HU": "hu", "GR": "el",
    "FI": "fi", "HR": "hr", "BG": "bg", "RS": "sr", "SK": "sk", "SI": "sl",
}

LANGUAGE_NAMES: Dict[str, str] = {
    "en": "English", "it": "Italian", "es": "Spanish", "fr": "French",
    "de": "German", "pt": "Portuguese", "ja": "Japanese", "zh": "Chinese",
    "ar": "Arabic", "ru": "Russian", "ko": "Korean", "nl": "Dutch",
    "sv": "Swedish", "no": "Norwegian", "da": "Danish", "fi": "Finnish",
    "pl": "Polish", "tr": "Turkish", "he": "Hebrew", "th": "Thai",
    "vi": "Vietnamese", "id": "Indonesian", "ms": "Malay", "uk": "Ukrainian",
    "cs": "Czech", "hu": "Hungarian", "ro": "Romanian", "el": "Greek",
    "hr": "Croatian", "bg": "Bulgarian", "sr": "Serbian", "sk": "Slovak",
    "sl": "Slovenian", "fa": "Persian", "hi": "Hindi",
}

# DuckDuckGo kl 參數
SEARCH_REGIONS: Dict[str, str] = {
    "en": "us-en", "it": "it-it", "es": "es-es", "fr": "fr-fr",
    "de": "de-de", "pt": "br-pt", "ja": "jp-jp", "zh": "cn-zh",
    "ar": "xa-ar", "ru": "ru-ru", "ko": "kr-kr", "nl": "nl-nl",
    "sv": "se-sv", "no": "no-no", "da": "dk-da", "fi": "fi-fi",
    "pl": "pl-pl", "tr": "tr-tr", "he": "il-he", "th": "th-th",
    "vi": "vn-vi", "id": "id-id", "uk": "ua-uk", "cs": "cz-cs",
}


def language_for_country(country_code: str) -> str:
    """國家代碼 -> 語言代碼 (未知 = en)"""
    return COUNTRY_LANGUAGE_MAP.get((country_code or "").upper(), "en")


def language_name(language: str) -> str:
    """語言代碼 -> 英文名稱 (未知 = English)"""
    return LANGUAGE_NAMES.get(language, "English")


def search_region(language: str) -> str:
    """語言代碼 -> DuckDuckGo region (未知 = wt-wt，全球)"""
    return SEARCH_REGIONS.get(language, "wt-wt")


def country_name(country_code: str) -> str:
    country = COUNTRIES_BY_CODE.get((country_code or "").upper())
    return country.name if country else country_code


def select_countries(count: int, codes: List[str] = None) -> List[Country]:
    """
    取前 count 個國家

    Args:
        count: 國家數
        codes: 設定中的國家代碼清單 (空 = 預設清單)

    Returns:
        Country 清單
    """
    if codes:
        pool = [
            COUNTRIES_BY_CODE.get(code.upper())
            or Country(code.upper(), code.upper(), language_for_country(code), code.lower())
            for code in codes
        ]
    else:
        pool = DEFAULT_COUNTRIES
    return list(pool[:max(0, count)])
