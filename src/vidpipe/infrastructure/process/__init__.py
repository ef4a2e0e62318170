from .runner import ProcessRunner, ProcessStream, merged_env

__all__ = ["ProcessRunner", "ProcessStream", "merged_env"]
