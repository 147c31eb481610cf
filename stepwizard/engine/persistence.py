"""Persistence adapters - where wizard snapshots are saved to and loaded from."""

import os
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional

import yaml

from .schema import WizardSnapshot


class WizardPersistence(ABC):
    """Interface for storing wizard snapshots. The engine never interprets storage."""

    @abstractmethod
    def save(self, snapshot: WizardSnapshot) -> None:
        """Store the latest snapshot."""
        pass

    @abstractmethod
    def load(self) -> Optional[WizardSnapshot]:
        """Return the stored snapshot, or None if nothing was saved."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Forget the stored snapshot."""
        pass


class YamlFilePersistence(WizardPersistence):
    """Real implementation - keeps the snapshot in a YAML file."""

    def __init__(self, path: str):
        """
        Args:
            path: YAML file to write; parent directories are created on save
        """
        self.path = path

    def save(self, snapshot: WizardSnapshot) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        # Serialize before touching the file so a failed dump keeps the last snapshot
        text = yaml.safe_dump(self._to_document(snapshot), sort_keys=False)

        temp_path = f"{self.path}.tmp"
        with open(temp_path, 'w') as f:
            f.write(text)
        os.replace(temp_path, self.path)

    def load(self) -> Optional[WizardSnapshot]:
        if not os.path.exists(self.path):
            return None

        with open(self.path, 'r') as f:
            document = yaml.safe_load(f)

        if not document:
            return None
        return WizardSnapshot.model_validate(document)

    def clear(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)

    def _to_document(self, snapshot: WizardSnapshot) -> Dict[str, Any]:
        """Convert a snapshot to plain YAML-safe data.

        Error values are opaque objects, so only their text survives.
        """
        document = snapshot.model_dump(mode='python')
        document['errors'] = {
            step: error if isinstance(error, (str, int, float, bool)) else str(error)
            for step, error in snapshot.errors.items()
        }
        return document


class MemoryPersistence(WizardPersistence):
    """In-memory store for testing - records calls."""

    def __init__(self, saved: Optional[WizardSnapshot] = None):
        self.calls = []
        self.saved = saved

    def save(self, snapshot: WizardSnapshot) -> None:
        self.calls.append(('save', snapshot.current_step))
        self.saved = snapshot

    def load(self) -> Optional[WizardSnapshot]:
        self.calls.append(('load',))
        return self.saved

    def clear(self) -> None:
        self.calls.append(('clear',))
        self.saved = None
