import logging
import os
import yaml
from pathlib import Path
from typing import Optional
from pydantic import ValidationError

from bca.domain.errors import CheckpointError
from bca.domain.models import Checkpoint


class CheckpointStore:
    """Persists the resumable state of an interrupted run as a YAML document.

    The store only serializes; whether the remaining list still makes sense
    is for the orchestrator to decide when resuming.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.logger = logging.getLogger(__name__)

    def exists(self) -> bool:
        return self.path.is_file()

    def save(self, checkpoint: Checkpoint) -> None:
        """Writes the checkpoint atomically (temp file, then os.replace)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(checkpoint.to_document(), f, sort_keys=False, allow_unicode=True)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)
        self.logger.info(
            f"Checkpoint saved: {self.path} "
            f"(total={checkpoint.total_files}, remaining={len(checkpoint.remaining_files)})"
        )

    def load(self) -> Optional[Checkpoint]:
        """Returns the stored checkpoint, or None when there is none."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            return None
        except yaml.YAMLError as e:
            raise CheckpointError(f"Checkpoint {self.path} is not valid YAML: {e}") from e

        if not isinstance(data, dict):
            raise CheckpointError(f"Checkpoint {self.path} is not a key/value document")
        try:
            return Checkpoint.model_validate(data)
        except ValidationError as e:
            raise CheckpointError(f"Checkpoint {self.path} is incomplete: {e}") from e

    def delete(self) -> None:
        try:
            self.path.unlink()
            self.logger.info(f"Checkpoint deleted: {self.path}")
        except FileNotFoundError:
            pass
