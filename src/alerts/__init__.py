from .manager import AlertManager, LocalCue

__all__ = ["AlertManager", "LocalCue"]
