"""
changelog_engine package - changelog normalization

Expose both normalizers and the generator that registers their output.
"""
from .batch.windowed_normalizer import WindowedChangelogNormalizer, remove_carry_overs
from .generator import ChangesGenerator
from .streaming.changelog_iterator import ChangelogIterator, changelog_iterator
from .streaming.normalizer import StreamingChangelogNormalizer
from .types.change_record import ChangeOperation, ChangeRecord, RecordSchema

__all__ = [
    "ChangeOperation",
    "ChangeRecord",
    "ChangelogIterator",
    "ChangesGenerator",
    "RecordSchema",
    "StreamingChangelogNormalizer",
    "WindowedChangelogNormalizer",
    "changelog_iterator",
    "remove_carry_overs",
]
