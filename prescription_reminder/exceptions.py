"""
Exceptions raised by the prescription pipeline
"""


class PrescriptionExtractionError(Exception):
    """Base exception for all pipeline errors"""
    pass


class DocumentFormatError(PrescriptionExtractionError):
    """Input bytes could not be decoded as the declared document kind"""
    pass


class RecognitionFailure(PrescriptionExtractionError):
    """Every OCR strategy failed on the image"""
    pass


class RemoteExtractionFailure(PrescriptionExtractionError):
    """Remote AI extraction failed (network, timeout or malformed response)"""
    pass


class PlausibilityRejected(PrescriptionExtractionError):
    """Extraction does not look like a prescription"""

    def __init__(self, message, report=None):
        super().__init__(message)
        self.report = report
