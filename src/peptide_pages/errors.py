"""Exceptions raised by pipeline stages."""

from typing import Optional


class PipelineError(Exception):
    """Base exception for pipeline failures"""
    pass


class IngestError(PipelineError):
    """Raised when a literature source cannot be queried"""

    def __init__(self, source: str, peptide: str, message: str = ""):
        self.source = source
        self.peptide = peptide
        super().__init__(message or f"{source} ingestion failed for {peptide}")


class SynthesisError(PipelineError):
    """Raised when text generation fails or returns unusable output"""

    def __init__(self, peptide: str, message: str, raw_output: Optional[str] = None, usage=None):
        self.peptide = peptide
        self.raw_output = raw_output
        # Tokens already spent when the output turned out unusable
        self.usage = usage
        super().__init__(message)


class AuditError(PipelineError):
    """Raised when the external auditor returns a response we cannot parse"""

    def __init__(self, message: str, usage=None):
        # Tokens already spent when the verdict turned out unusable
        self.usage = usage
        super().__init__(message)


class PublishError(PipelineError):
    """Raised when one of the publish sub-steps fails"""

    def __init__(self, step: str, message: str):
        self.step = step
        super().__init__(f"{step} failed: {message}")
