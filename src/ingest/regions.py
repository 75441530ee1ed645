"""
Keyword-based region classification for posts.

Each region has three tiers of patterns (places, people, organizations) worth
3, 2 and 1 points. The best-scoring region wins when it reaches
``MIN_REGION_SCORE``; otherwise the post keeps its source's region.

A post that mentions both the US and a foreign region goes to the foreign
region when that region scores at least as high, e.g. "Congress approves
Ukraine aid" is Europe-Russia news.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

ALL_REGION = "all"
US_REGION = "us"
MIN_REGION_SCORE = 3
TIER_POINTS = {"high": 3, "medium": 2, "low": 1}


def _compile(*patterns: str, case_sensitive: tuple[str, ...] = ()) -> tuple[re.Pattern, ...]:
    compiled = [re.compile(rf"\b{p}\b", re.IGNORECASE) for p in patterns]
    compiled.extend(re.compile(p) for p in case_sensitive)
    return tuple(compiled)


_POSS = r"(?:'s)?"

REGION_PATTERNS: dict[str, dict[str, tuple[re.Pattern, ...]]] = {
    "us": {
        "high": _compile(
            r"white\s+house", r"congress(?:ional)?", r"senate", r"house\s+of\s+rep\w*",
            r"supreme\s+court", r"fbi", r"cia", r"doj", r"department\s+of\s+justice",
            r"justice\s+department", r"dhs", r"homeland\s+security", r"secret\s+service",
            r"national\s+guard", r"border\s+patrol", r"cbp", r"nypd", r"epa", r"fda",
            rf"biden{_POSS}", r"trump(?:'s|ian|ism)?", rf"harris{_POSS}", rf"pelosi{_POSS}",
            rf"schumer{_POSS}", rf"mcconnell{_POSS}", rf"vance{_POSS}", rf"desantis{_POSS}",
            r"capitol", r"january\s+6", r"j6", r"maga", r"epstein",
            r"(?:alabama|alaska|arizona|arkansas|california|colorado|connecticut|delaware"
            r"|florida|georgia|hawaii|idaho|illinois|indiana|iowa|kansas|kentucky|louisiana"
            r"|maine|maryland|massachusetts|michigan|minnesota|mississippi|missouri|montana"
            r"|nebraska|nevada|new\s+hampshire|new\s+jersey|new\s+mexico|north\s+carolina"
            r"|north\s+dakota|ohio|oklahoma|oregon|pennsylvania|rhode\s+island"
            r"|south\s+carolina|south\s+dakota|tennessee|texas|utah|vermont|virginia"
            rf"|washington|west\s+virginia|wisconsin|wyoming){_POSS}",
            r"new\s+york", r"nyc", r"los\s+angeles", r"chicago", r"houston", r"phoenix",
            r"philadelphia", r"san\s+antonio", r"san\s+diego", r"dallas", r"san\s+francisco",
            r"seattle", r"denver", r"atlanta", r"miami", r"boston", r"minneapolis", r"detroit",
            r"las\s+vegas", r"baltimore", r"pacific\s+northwest", r"midwest",
            case_sensitive=(
                r"\bICE\b", r"\bDEA\b", r"\bATF\b", r"\bU\.S\.",
                r"(?:^|[\s\"'])US(?:[\s\"',.;:!?]|$)",
            ),
        ),
        "medium": _compile(
            r"washington\s*,?\s*d\.?c", r"pentagon", r"state\s+department", r"american",
            r"u\.?s\.?\s+(?:military|forces|troops)", r"republicans?", r"democrats?",
            r"democratic", r"gop",
        ),
        "low": _compile(r"domestic", r"federal", r"governor"),
    },
    "latam": {
        "high": _compile(
            r"venezuela(?:ns?)?", r"caracas", r"maduro", r"guaid[oó]", r"chavista\w*", r"pdvsa",
            r"brazil(?:ian)?", r"brasilia", r"lula", r"bolsonaro", r"sao\s+paulo",
            r"rio\s+de\s+janeiro", r"argentina", r"buenos\s+aires", r"milei",
            r"mexic(?:o|an)", r"sheinbaum", r"amlo", r"cartels?", r"colombia(?:n)?", r"bogota",
            r"farc", r"medellin", r"chile(?:an)?", r"boric", r"peru(?:vian)?", r"cuba(?:n)?",
            r"havana", r"haiti(?:an)?", r"port.au.prince", r"puerto\s+rico",
            r"dominican\s+republic",
        ),
        "medium": _compile(
            r"essequibo", r"guyana", r"ecuador", r"bolivia(?:n)?", r"paraguay", r"uruguay",
            r"panama", r"costa\s+rica", r"nicaragua", r"honduras", r"el\s+salvador", r"bukele",
            r"guatemala(?:n)?",
        ),
        "low": _compile(
            r"latin\s+america", r"south\s+america", r"central\s+america", r"caribbean",
            r"latam", r"mercosur",
        ),
    },
    "middle-east": {
        "high": _compile(
            r"israel(?:i|is)?", r"gaza", r"rafah", r"west\s+bank", r"tel\s+aviv", r"jerusalem",
            r"hamas", r"idf", r"iron\s+dome", r"netanyahu", r"hezbollah", r"lebanon",
            r"lebanese", r"beirut", r"iran(?:ian)?", r"tehran", r"irgc", r"khamenei",
            r"yemen(?:i)?", r"houthis?", r"sanaa", r"syria(?:n)?", r"damascus", r"assad",
            r"aleppo", r"idlib", r"iraq(?:i)?", r"baghdad", r"erbil", r"saudi", r"riyadh",
            r"red\s+sea", r"jordan(?:ian)?", r"amman",
        ),
        "medium": _compile(
            r"middle\s+east", r"palestinians?", r"khan\s+yunis", r"ramallah", r"golan",
            r"sinai", r"suez", r"qatari?", r"doha", r"emirati?", r"dubai", r"abu\s+dhabi",
            r"kuwait\w*", r"bahrain\w*", r"oman(?:i)?",
        ),
        "low": _compile(r"shia", r"sunni", r"isis", r"isil", r"daesh", r"jihadists?"),
    },
    "europe-russia": {
        "high": _compile(
            r"ukrain(?:e|ian|ians)", r"kyiv", r"kharkiv", r"odes+a", r"zelenskyy?", r"russia(?:n|ns)?",
            r"moscow", r"putin", r"kreml[ie]n", r"lavrov", r"shoigu", r"gerasimov", r"wagner",
            r"donbas+", r"donetsk", r"luhansk", r"crimea(?:n)?", r"sevastopol", r"zaporizhzhia",
            r"kherson", r"mariupol", r"bakhmut", r"avdiivka", r"pokrovsk", r"kupyansk", r"sumy",
            r"lviv", r"dnipro", r"mykolaiv", r"chernihiv", r"belarus(?:ian)?", r"lukashenko",
            r"minsk", r"german(?:y)?", r"berlin", r"france", r"french", r"paris", r"macron",
            r"britain", r"british", r"london", r"starmer", r"poland", r"polish", r"warsaw",
            r"nato", r"european\s+union", r"eu", r"brussels", r"hungary", r"hungarian",
            r"orb[aá]n", r"ital(?:y|ian)", r"rome", r"norway", r"tbilisi", r"south\s+ossetia",
            r"abkhazia",
            case_sensitive=(r"\bU\.?K\.?\b",),
        ),
        "medium": _compile(
            r"black\s+sea", r"kerch", r"shaheds?", r"kinzhal", r"iskander", r"kalibr",
            r"s-[34]00", r"himars", r"leopard", r"f-16s?", r"rostov", r"belgorod", r"kursk",
            r"bryansk", r"spain", r"spanish", r"madrid", r"netherlands", r"baltics?",
            r"nordic", r"finland", r"sweden",
        ),
        "low": _compile(
            r"eastern\s+front", r"counter.?offensive", r"mobili[sz]ation", r"europe",
        ),
    },
    "asia": {
        "high": _compile(
            r"taiwan(?:ese)?", r"taipei", r"china", r"chinese", r"beijing", r"xi\s+jinping",
            r"ccp", r"hong\s+kong", r"xinjiang", r"uyghurs?", r"uighurs?", r"tibet(?:an)?",
            r"shanghai", r"fujian", r"japan(?:ese)?", r"tokyo", r"north\s+korea(?:n)?",
            r"south\s+korea(?:n)?", r"pyongyang", r"seoul", r"kim\s+jong", r"vietnam(?:ese)?",
            r"hanoi", r"thailand", r"bangkok", r"indonesia(?:n)?", r"jakarta", r"singapore",
            r"malaysia(?:n)?", r"philippines?", r"filipino", r"manila", r"myanmar", r"burma",
            r"yangon", r"india(?:n)?", r"new\s+delhi", r"modi", r"pakistan(?:i)?",
            r"islamabad", r"bangladesh(?:i)?", r"dhaka", r"afghanistan", r"kabul", r"taliban",
            case_sensitive=(r"\bPLA(?:N|AF)?\b",),
        ),
        "medium": _compile(
            r"south\s+china\s+sea", r"east\s+china\s+sea", r"spratlys?", r"paracels?",
            r"senkaku", r"first\s+island\s+chain", r"aukus", r"7th\s+fleet", r"asean",
            r"cambodia(?:n)?", r"laos", r"sri\s+lanka(?:n)?", r"nepal",
        ),
        "low": _compile(r"semiconductors?", r"tsmc", r"rare\s+earths?", r"asia", r"pacific"),
    },
    "africa": {
        "high": _compile(
            r"nigeria(?:n)?", r"kenya(?:n)?", r"ethiopia(?:n)?", r"sudan(?:ese)?",
            r"somalia(?:n)?", r"congo(?:lese)?", r"drc", r"south\s+africa(?:n)?",
            r"cameroon(?:ian)?", r"ghana(?:ian)?", r"tanzania(?:n)?", r"uganda(?:n)?",
            r"rwanda(?:n)?", r"mozambique", r"mali(?:an)?", r"niger", r"burkina\s+faso",
            r"chad(?:ian)?", r"senegal(?:ese)?", r"eritrea(?:n)?", r"libya(?:n)?",
            r"tunisia(?:n)?", r"algeria(?:n)?", r"morocc(?:o|an)", r"zimbabwe(?:an)?",
            r"angola(?:n)?", r"lagos", r"nairobi", r"addis\s+ababa", r"khartoum", r"darfur",
            r"pretoria", r"johannesburg", r"cape\s+town", r"kinshasa", r"goma", r"mogadishu",
            r"abuja", r"kampala", r"tripoli", r"african\s+union", r"ecowas", r"boko\s+haram",
            r"al.?shabaa?b", r"rsf",
        ),
        "medium": _compile(
            r"sahel", r"sub.saharan", r"horn\s+of\s+africa", r"maghreb", r"west\s+africa",
            r"east\s+africa", r"benin", r"togo", r"gabon", r"guinea", r"sierra\s+leone",
            r"liberia(?:n)?", r"ivory\s+coast", r"malawi", r"zambia(?:n)?", r"namibia(?:n)?",
            r"djibouti", r"mauritania",
        ),
        "low": _compile(r"africa", r"african"),
    },
}


@dataclass
class RegionMatch:
    region: str
    score: int
    keywords: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RegionClassification:
    """``region`` is where the post is counted. ``source_region`` is set only
    when the text pulled the post away from its source's specific region."""

    region: str
    source_region: Optional[str] = None


def score_text(text: str, region: str) -> RegionMatch:
    match = RegionMatch(region=region, score=0)
    for tier, patterns in REGION_PATTERNS[region].items():
        for pattern in patterns:
            found = pattern.search(text)
            if found:
                match.score += TIER_POINTS[tier]
                match.keywords.append(found.group(0).strip())
    return match


def detect_region(text: str) -> Optional[str]:
    """Return the region the text is about, or None when no region is confident."""
    if not text:
        return None

    matches = [score_text(text, region) for region in REGION_PATTERNS]
    # stable sort keeps declaration order on ties
    matches = sorted((m for m in matches if m.score > 0), key=lambda m: m.score, reverse=True)
    if not matches or matches[0].score < MIN_REGION_SCORE:
        return None

    top = matches[0]
    if top.region == US_REGION:
        foreign = next(
            (m for m in matches if m.region != US_REGION and m.score >= MIN_REGION_SCORE),
            None,
        )
        if foreign is not None and foreign.score >= top.score:
            return foreign.region
    return top.region


def classify_region(title: str, content: str, source_region: str = ALL_REGION) -> RegionClassification:
    """Pick the region a post is counted under, falling back to the source's."""
    detected = detect_region(f"{title} {content}")

    if detected is None:
        return RegionClassification(region=source_region)
    if source_region != ALL_REGION and detected != source_region:
        return RegionClassification(region=detected, source_region=source_region)
    return RegionClassification(region=detected)
