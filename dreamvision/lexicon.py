"""Fixed lookup tables consulted by the feature extractor and composer.

Every table is read-only: mappings are wrapped in ``MappingProxyType`` and
sequences are tuples, so no caller can mutate them after import.
"""

from __future__ import annotations

from types import MappingProxyType

DEFAULT_TRAIT = "adaptability"
DEFAULT_THEME = "Personal Growth"
DEFAULT_EMOTION = "Curiosity"

# Iteration order is the output order for extracted symbols.
SYMBOL_MEANINGS = MappingProxyType(
    {
        "water": "emotions, subconscious, cleansing, life force",
        "flying": "freedom, transcendence, overcoming obstacles, spiritual elevation",
        "animals": "instincts, natural desires, untamed aspects of self",
        "death": "transformation, endings, rebirth, fear of change",
        "house": "self, mind, different aspects of personality",
        "falling": "loss of control, anxiety, fear of failure",
        "chase": "avoidance, running from problems, confronting fears",
        "fire": "passion, anger, destruction, purification",
        "mirror": "self-reflection, truth, vanity, self-perception",
        "money": "value, self-worth, security, power",
        "baby": "new beginnings, innocence, vulnerability, potential",
        "car": "control, direction in life, personal drive",
        "school": "learning, testing, anxiety, past experiences",
        "wedding": "commitment, unity, new phase, celebration",
    }
)

# Each symbol fires on its own name plus a few close variants.
SYMBOL_TRIGGERS = MappingProxyType(
    {
        symbol: (symbol,) + extra
        for symbol, extra in (
            ("water", ("ocean",)),
            ("flying", ()),
            ("animals", ("animal", "bird")),
            ("death", ()),
            ("house", ()),
            ("falling", ()),
            ("chase", ()),
            ("fire", ()),
            ("mirror", ()),
            ("money", ()),
            ("baby", ()),
            ("car", ()),
            ("school", ()),
            ("wedding", ()),
        )
    }
)

HOROSCOPE_TRAITS = MappingProxyType(
    {
        "Aries": ("leadership", "courage", "impulsiveness", "adventure"),
        "Taurus": ("stability", "sensuality", "stubbornness", "comfort"),
        "Gemini": ("communication", "curiosity", "duality", "adaptability"),
        "Cancer": ("emotions", "nurturing", "protection", "family"),
        "Leo": ("creativity", "confidence", "attention", "drama"),
        "Virgo": ("perfectionism", "service", "analysis", "health"),
        "Libra": ("harmony", "relationships", "beauty", "balance"),
        "Scorpio": ("intensity", "transformation", "mystery", "depth"),
        "Sagittarius": ("freedom", "adventure", "philosophy", "truth"),
        "Capricorn": ("ambition", "structure", "responsibility", "success"),
        "Aquarius": ("innovation", "friendship", "rebellion", "idealism"),
        "Pisces": ("intuition", "creativity", "spirituality", "empathy"),
    }
)

ZODIAC_SIGNS = tuple(HOROSCOPE_TRAITS.keys())

# (label, triggers) in canonical output order.
THEME_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Family & Relationships", ("family", "parent", "child")),
    ("Career & Achievement", ("work", "job", "career")),
    ("Love & Romance", ("love", "romantic", "partner")),
    ("Fear & Anxiety", ("fear", "scared", "anxiety")),
    ("Adventure & Exploration", ("travel", "journey", "adventure", "explor", "flying")),
    ("Past & Memory", ("past", "memory", "childhood")),
    ("Future & Aspirations", ("future", "dream", "goal")),
)

EMOTION_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Joy", ("happy", "joy", "excited")),
    ("Sadness", ("sad", "cry", "tears")),
    ("Anger", ("angry", "mad", "rage")),
    ("Fear", ("scared", "fear", "terrified")),
    ("Peace", ("peaceful", "calm", "serene")),
    ("Confusion", ("confused", "lost", "uncertain")),
    ("Empowerment", ("powerful", "strong", "confident")),
)

THEME_NAMES = tuple(label for label, _ in THEME_RULES)
EMOTION_NAMES = tuple(label for label, _ in EMOTION_RULES)


def traits_for_sign(sign: str) -> tuple[str, str, str, str]:
    """Return the four traits of ``sign``; unknown signs get the default trait in every slot."""
    traits = HOROSCOPE_TRAITS.get(sign)
    if traits is None:
        return (DEFAULT_TRAIT,) * 4
    return traits
