"""Random test data for generated and anonymized records."""

import random
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

FIRST_NAMES = [
    "james", "mary", "robert", "patricia", "john", "jennifer", "michael", "linda",
    "david", "elizabeth", "william", "barbara", "richard", "susan", "joseph", "jessica",
    "thomas", "sarah", "carlos", "maria", "ahmed", "fatima", "wei", "mei",
]
LAST_NAMES = [
    "smith", "johnson", "williams", "brown", "jones", "garcia", "miller", "davis",
    "rodriguez", "martinez", "hernandez", "lopez", "gonzalez", "wilson", "anderson",
    "thomas", "taylor", "moore", "jackson", "martin", "lee", "khan", "nowak", "chen",
]
STREET_NAMES = [
    "main street", "oak avenue", "maple drive", "cedar lane", "pine street",
    "elm street", "washington boulevard", "lake view road", "park place", "hill road",
]
CITY_NAMES = [
    "springfield", "riverside", "franklin", "greenville", "bristol", "clinton",
    "fairview", "salem", "madison", "georgetown", "arlington", "ashland",
]
STATE_CODES = ["al", "ca", "co", "fl", "ga", "il", "ma", "ny", "oh", "pa", "tx", "wa"]

WORDS = {
    "lorem": [
        "lorem", "ipsum", "dolor", "sit", "amet", "consectetur", "adipiscing", "elit",
        "sed", "do", "eiusmod", "tempor", "incididunt", "ut", "labore", "et", "dolore",
        "magna", "aliqua", "enim", "ad", "minim", "veniam", "quis", "nostrud",
    ],
    "english": [
        "account", "river", "window", "garden", "market", "simple", "bright", "travel",
        "number", "paper", "season", "friend", "silver", "answer", "morning", "letter",
    ],
    "spanish": [
        "casa", "perro", "gato", "libro", "agua", "ciudad", "camino", "tiempo",
        "mundo", "verde", "noche", "amigo", "cielo", "mesa", "fuego", "puerta",
    ],
    "polish": [
        "dom", "pies", "kot", "woda", "miasto", "droga", "czas", "zielony",
        "noc", "przyjaciel", "niebo", "stol", "ogien", "drzwi", "chleb", "rzeka",
    ],
    "urdu": [
        "ghar", "kitab", "pani", "shehar", "raasta", "waqt", "duniya", "sabz",
        "raat", "dost", "aasman", "mez", "aag", "darwaza", "roti", "darya",
    ],
}

PATTERN_CHARS = {
    "a": string.ascii_lowercase,
    "A": string.ascii_uppercase,
    "0": string.digits,
    "!": "~!@#$%^&()_+-={}[];',.",
}


@dataclass
class RandomData:
    """
    Random values for transforms and generators.

    Attributes:
        language: word list used for word/sentence/paragraph
            (english, spanish, polish, urdu; anything else is lorem ipsum)
        string_pattern: default pattern for random strings
            (a=lowercase, A=uppercase, 0=digits, !=symbols, *=all of them)
        seed: seed for reproducible output
    """
    language: Optional[str] = None
    string_pattern: str = "a"
    seed: Optional[int] = None
    _rng: random.Random = field(init=False, repr=False)

    def __post_init__(self):
        self._rng = random.Random(self.seed)

    @staticmethod
    def capitalize(name: str) -> str:
        if len(name) < 2:
            return name.upper()
        return name[0].upper() + name[1:].lower()

    def find(self, names: Sequence[str]) -> str:
        """Pick a value and capitalize each of its words."""
        return " ".join(self.capitalize(part) for part in self._rng.choice(names).split(" "))

    def get_string(self, pattern: Optional[str] = None, length: Optional[int] = None) -> str:
        """Random string whose characters come from the pattern's character classes."""
        pattern = pattern or self.string_pattern
        if length is None:
            length = self._rng.randint(3, 11)

        if "*" in pattern:
            chars = "".join(PATTERN_CHARS.values())
        else:
            chars = "".join(PATTERN_CHARS[c] for c in dict.fromkeys(pattern) if c in PATTERN_CHARS)
        chars = chars or string.ascii_lowercase
        return "".join(self._rng.choice(chars) for _ in range(length))

    def get_date(self, min_days: int = -365 * 21, max_days: int = -365 * 65) -> str:
        """Timestamp offset from today by a random number of days in [min_days, min_days + max_days)."""
        count = int(self._rng.random() * max_days) + min_days
        result = datetime.now(timezone.utc) + timedelta(days=count)
        return result.strftime("%Y-%m-%dT%H:%M:%S.") + f"{result.microsecond // 1000:03d}Z"

    @property
    def date(self) -> str:
        return self.get_date()

    @property
    def last_week(self) -> str:
        return self.get_date(-1, -8)

    @property
    def last_month(self) -> str:
        return self.get_date(-1, -31)

    @property
    def last_year(self) -> str:
        return self.get_date(-1, -366)

    @property
    def next_week(self) -> str:
        return self.get_date(1, 8)

    @property
    def next_month(self) -> str:
        return self.get_date(1, 31)

    @property
    def next_year(self) -> str:
        return self.get_date(1, 366)

    @property
    def string(self) -> str:
        return self.get_string()

    @property
    def word(self) -> str:
        key = self.language if self.language in WORDS else "lorem"
        return self._rng.choice(WORDS[key])

    @property
    def sentence(self) -> str:
        words = [self.capitalize(self.word)]
        words.extend(self.word for _ in range(self._rng.randint(3, 7)))
        return " ".join(words) + ". "

    @property
    def paragraph(self) -> str:
        return "".join(self.sentence for _ in range(self._rng.randint(4, 8)))

    @property
    def first_name(self) -> str:
        return self.find(FIRST_NAMES)

    @property
    def last_name(self) -> str:
        return self.find(LAST_NAMES)

    @property
    def street(self) -> str:
        return self.find(STREET_NAMES)

    @property
    def city(self) -> str:
        return self.find(CITY_NAMES)

    @property
    def state(self) -> str:
        return self.find(STATE_CODES).upper()

    @property
    def person(self) -> Dict[str, Any]:
        """A fake person with contact details and a US address."""
        first_name = self.first_name
        last_name = self.last_name
        return {
            "firstName": first_name,
            "lastName": last_name,
            "birthdate": self.date,
            "ssn": f"{self.get_string('0', 3)}-{self.get_string('0', 2)}-{self.get_string('0', 4)}",
            "phone": f"({self.get_string('0', 3)}) {self.get_string('0', 3)}-{self.get_string('0', 4)}",
            "email": f"{first_name.lower()}.{last_name.lower()}@{self.get_string('a', 8)}.com",
            "street": f"{self.get_string('0', 4)} {self.street}",
            "city": self.city,
            "state": self.state,
            "zip": self.get_string("0", 5),
        }

    def people(self, count: int) -> List[Dict[str, Any]]:
        return [self.person for _ in range(count)]
