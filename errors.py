"""Error taxonomy shared by the pipelines and the request handlers."""

from typing import Optional

MISSING_REQUIRED_FIELD = "missing-required-field"
INVALID_REQUEST = "invalid-request"
PACK_INSERT_FAILED = "pack-insert-failed"
PIN_INSERT_FAILED = "pin-insert-failed"
LINK_INSERT_FAILED = "link-insert-failed"
ORDER_CREATE_FAILED = "order-create-failed"
ORDER_ITEMS_CREATE_FAILED = "order-items-create-failed"
ORDER_UPDATE_FAILED = "order-update-failed"
ORDER_ITEMS_READ_FAILED = "order-items-read-failed"
PURCHASES_READ_FAILED = "purchases-read-failed"
INTERNAL_ERROR = "internal-error"


class PipelineError(Exception):
    """A terminal failure of a write pipeline.

    ``step`` names the pipeline step that failed (``pack``, ``pins``, ...);
    ``detail`` carries the underlying store message, if any.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        step: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.step = step
        self.detail = detail

    def __repr__(self) -> str:
        return f"PipelineError(code={self.code!r}, step={self.step!r}, message={self.message!r})"


def missing_field(message: str) -> PipelineError:
    return PipelineError(MISSING_REQUIRED_FIELD, message, status_code=400)
