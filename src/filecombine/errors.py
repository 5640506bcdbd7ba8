"""
Exceptions raised by filecombine.
"""


class FilecombineError(Exception): ...
class SelectionError(FilecombineError): ...
class ConfigFileError(FilecombineError): ...
class OutputError(FilecombineError): ...
class FileReadError(FilecombineError): ...


class OperationCancelled(FilecombineError):
    """Raised inside a run when its cancellation token fires."""
