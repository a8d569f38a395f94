from mission_runner.state.store import RunnerStateStore, read_snapshot

__all__ = ["RunnerStateStore", "read_snapshot"]
