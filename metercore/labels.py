"""Label canonicalization and label set interning."""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping
import threading

IDENTIFIER_PREFIX = "|#"


def label_identifier(labels: Mapping[str, str]) -> str:
    """Generate a stable identifier from sorted labels."""
    keys = sorted(labels.keys())
    return IDENTIFIER_PREFIX + ",".join(f"{k}:{labels[k]}" for k in keys)


@dataclass(frozen=True, eq=False)
class LabelSet:
    """Canonical, immutable set of labels.

    Two label sets are equal when their identifiers are equal, regardless of
    the insertion order of the mapping they were built from.
    """
    identifier: str
    labels: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "labels", MappingProxyType(dict(self.labels)))

    def __eq__(self, other):
        if not isinstance(other, LabelSet):
            return NotImplemented
        return self.identifier == other.identifier

    def __hash__(self):
        return hash(self.identifier)

    def __repr__(self):
        return f"LabelSet({self.identifier!r})"


def canonicalize(labels: Mapping[str, str]) -> LabelSet:
    """Build a LabelSet keeping the caller's mapping and the sorted identifier."""
    if not isinstance(labels, Mapping):
        raise TypeError(f"labels must be a mapping, got {type(labels).__name__}")
    return LabelSet(label_identifier(labels), labels)


class LabelSetCache:
    """
    Interning table so equal label content yields the same LabelSet object.

    Entries are kept until discarded; unbinding instruments does not evict
    them. With unbounded label cardinality, release label sets that are no
    longer used through ``discard()`` (or ``Meter.release_labels()``);
    otherwise the table grows for the life of its meter.
    """

    def __init__(self):
        self._label_sets: Dict[str, LabelSet] = {}
        self._lock = threading.Lock()

    def get(self, labels: Mapping[str, str]) -> LabelSet:
        label_set = canonicalize(labels)
        with self._lock:
            return self._label_sets.setdefault(label_set.identifier, label_set)

    def __len__(self):
        with self._lock:
            return len(self._label_sets)

    def discard(self, label_set: LabelSet):
        """Forget an interned label set; later lookups build a new object."""
        with self._lock:
            if self._label_sets.get(label_set.identifier) is label_set:
                del self._label_sets[label_set.identifier]
