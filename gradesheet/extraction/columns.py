"""Column labels requested from the model and their schema keys.

Custom labels are turned into machine-safe schema keys once, when the
``ColumnSpec`` is built. The resulting label <-> key table travels with the
request and is the only thing used to map response keys back to labels, so
two labels that normalize to the same key ("Class A", "Class-A") never
collide: the later one gets a numeric suffix.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from gradesheet.extraction.types import ExtractionRecord

NAME_LABEL = "Student Name"
SCORE_LABEL = "Score"
NAME_KEY = "student_name"
SCORE_KEY = "score"

_KEY_TOKEN = re.compile(r"[a-z0-9]+")
# Letters NFKD does not decompose
_TRANSLIT = str.maketrans({"đ": "d", "Đ": "D", "ø": "o", "Ø": "O", "ß": "ss", "ł": "l", "Ł": "L"})


def _fold(label: str) -> str:
    return " ".join(label.split()).casefold()


_MANDATORY_FOLDED = {_fold(NAME_LABEL), _fold(SCORE_LABEL)}


def derive_key(label: str) -> str:
    """Lowercase, strip accents and punctuation, join words with underscores."""
    text = unicodedata.normalize("NFKD", label.translate(_TRANSLIT))
    text = "".join(ch for ch in text if not unicodedata.combining(ch)).lower()
    key = "_".join(_KEY_TOKEN.findall(text))
    return key or "field"


@dataclass(frozen=True)
class ColumnSpec:
    custom_labels: tuple[str, ...] = ()
    _label_to_key: Mapping[str, str] = field(default_factory=dict, repr=False, compare=False)
    _key_to_label: Mapping[str, str] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        # Direct construction: derive the tables the same way build() does
        if not self._label_to_key:
            built = ColumnSpec.build(self.custom_labels)
            object.__setattr__(self, "custom_labels", built.custom_labels)
            object.__setattr__(self, "_label_to_key", built._label_to_key)
            object.__setattr__(self, "_key_to_label", built._key_to_label)

    @classmethod
    def build(cls, custom_labels: Iterable[str] = ()) -> ColumnSpec:
        labels: list[str] = []
        seen: set[str] = set()
        for raw in custom_labels:
            label = raw.strip()
            if not label:
                raise ValueError("Column labels must not be blank")
            if _fold(label) in _MANDATORY_FOLDED or label in seen:
                continue
            seen.add(label)
            labels.append(label)

        label_to_key: dict[str, str] = {NAME_LABEL: NAME_KEY, SCORE_LABEL: SCORE_KEY}
        key_to_label: dict[str, str] = {NAME_KEY: NAME_LABEL, SCORE_KEY: SCORE_LABEL}
        for label in labels:
            base = derive_key(label)
            key = base
            n = 2
            while key in key_to_label:
                key = f"{base}_{n}"
                n += 1
            label_to_key[label] = key
            key_to_label[key] = label

        return cls(
            custom_labels=tuple(labels),
            _label_to_key=MappingProxyType(label_to_key),
            _key_to_label=MappingProxyType(key_to_label),
        )

    @property
    def labels(self) -> tuple[str, ...]:
        return (NAME_LABEL, SCORE_LABEL, *self.custom_labels)

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(self.key_for(label) for label in self.labels)

    @property
    def custom_keys(self) -> tuple[tuple[str, str], ...]:
        """(key, label) pairs for the custom columns, in label order."""
        return tuple((self._label_to_key[label], label) for label in self.custom_labels)

    def key_for(self, label: str) -> str:
        return self._label_to_key[label]

    def label_for(self, key: str) -> str:
        return self._key_to_label[key]

    def row(self, record: ExtractionRecord) -> list[str]:
        """Record values in label order; missing custom values are empty strings."""
        return [
            record.student_name,
            record.score,
            *(record.custom_fields.get(label, "") for label in self.custom_labels),
        ]
