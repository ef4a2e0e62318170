from .extractor import ExtractorPort
from .process_runner import ProcessResult, ProcessRunnerPort, ProcessStreamPort
from .streaming import MediaStreamPort, StreamOpenerPort

__all__ = [
    "ExtractorPort",
    "MediaStreamPort",
    "ProcessResult",
    "ProcessRunnerPort",
    "ProcessStreamPort",
    "StreamOpenerPort",
]
