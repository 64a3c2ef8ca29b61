"""
Sample and Record Storage

Filesystem persistence for the retraining pipeline:

    <root>/<label>/<sample_id>.json   labeled real samples (through a Cipher)
    <records>/rollbacks.jsonl          append-only rollback log
    <records>/recommendation_<ts>.json deployment recommendations

Consent and encryption are collaborators supplied by the host app; this
module only defines the interfaces the pipeline relies on.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from .labeling import label_stroke
from .schema import LabeledSample, RawStroke, ShapeLabel, SampleSource, count_by_label, utc_now

logger = logging.getLogger(__name__)


# =============================================================================
# COLLABORATOR INTERFACES
# =============================================================================

@dataclass
class ConsentGate:
    """Data-collection consent as granted by the user."""
    granted: bool = False
    purpose: str = "AI model training"
    data_types: List[str] = field(default_factory=lambda: ["drawing_strokes"])
    retention_days: int = 365


class Cipher:
    """At-rest protection for stored samples: bytes -> bytes both ways."""

    def encrypt(self, data: bytes) -> bytes:
        raise NotImplementedError

    def decrypt(self, data: bytes) -> bytes:
        raise NotImplementedError


class NullCipher(Cipher):
    """Identity cipher, for tests and unencrypted local stores."""

    def encrypt(self, data: bytes) -> bytes:
        return data

    def decrypt(self, data: bytes) -> bytes:
        return data


# =============================================================================
# SAMPLE STORE
# =============================================================================

class SampleStore:
    """
    Labeled real samples stored one JSON document per file, grouped by label.

    Args:
        root: Store directory (created on first save)
        cipher: Applied to every file's bytes on write and read
    """

    SUFFIX = ".json"

    def __init__(self, root: Union[str, Path], cipher: Optional[Cipher] = None):
        self.root = Path(root)
        self.cipher = cipher or NullCipher()

    def _label_dir(self, label: ShapeLabel) -> Path:
        return self.root / ShapeLabel(label).value

    def save(self, sample: LabeledSample) -> Path:
        directory = self._label_dir(sample.label)
        directory.mkdir(parents=True, exist_ok=True)
        sample.metadata.setdefault('collected_at', utc_now())
        path = directory / f"{sample.stroke.stroke_id}{self.SUFFIX}"
        payload = json.dumps(sample.to_dict()).encode('utf-8')
        path.write_bytes(self.cipher.encrypt(payload))
        return path

    def import_stroke(self, stroke: RawStroke, label: Optional[ShapeLabel] = None) -> LabeledSample:
        """Store an unlabeled capture, labeling it heuristically when no label is given."""
        metadata = {'source': SampleSource.REAL.value}
        if label is None:
            label = label_stroke(stroke)
            metadata['auto_labeled'] = True
        sample = LabeledSample(stroke=stroke, label=label, metadata=metadata)
        self.save(sample)
        return sample

    def _files(self, label: ShapeLabel) -> List[Path]:
        directory = self._label_dir(label)
        if not directory.is_dir():
            return []
        return sorted(directory.glob(f"*{self.SUFFIX}"))

    def iter_samples(self, label: ShapeLabel) -> Iterator[LabeledSample]:
        """Yield readable samples of one label; unreadable files are skipped."""
        for path in self._files(label):
            try:
                raw = self.cipher.decrypt(path.read_bytes())
                yield LabeledSample.from_dict(json.loads(raw.decode('utf-8')))
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.warning("Skipping unreadable sample %s: %s", path, e)

    def load(self, label: ShapeLabel, limit: Optional[int] = None) -> List[LabeledSample]:
        samples = []
        for sample in self.iter_samples(label):
            if limit is not None and len(samples) >= limit:
                break
            samples.append(sample)
        return samples

    def load_all(self) -> List[LabeledSample]:
        samples = []
        for label in ShapeLabel:
            samples.extend(self.load(label))
        return samples

    def count_by_label(self) -> Dict[ShapeLabel, int]:
        """File counts per label (every label present)."""
        counts = count_by_label([])
        for label in ShapeLabel:
            counts[label] = len(self._files(label))
        return counts


# =============================================================================
# RECORD STORE
# =============================================================================

def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")


class RecordStore:
    """Audit records: the rollback log and deployment recommendations."""

    ROLLBACK_LOG = "rollbacks.jsonl"

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def append_rollback(self, record: Dict[str, Any]):
        self.root.mkdir(parents=True, exist_ok=True)
        with open(self.root / self.ROLLBACK_LOG, 'a') as f:
            f.write(json.dumps(record) + "\n")

    def rollbacks(self) -> List[Dict[str, Any]]:
        path = self.root / self.ROLLBACK_LOG
        if not path.exists():
            return []
        with open(path) as f:
            return [json.loads(line) for line in f if line.strip()]

    def save_recommendation(self, recommendation: Dict[str, Any]) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / f"recommendation_{_timestamp()}.json"
        with open(path, 'w') as f:
            json.dump(recommendation, f, indent=2)
        return path
