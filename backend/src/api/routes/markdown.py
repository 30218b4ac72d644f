"""Structural markdown checks for edited content."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..middleware import AuthContext, get_auth_context
from ...models.markdown import MarkdownValidationRequest, MarkdownValidationResponse
from ...services.markdown_validation import build_validation_report

router = APIRouter(prefix="/api/markdown", tags=["markdown"])


@router.post("/validate", response_model=MarkdownValidationResponse)
async def validate_markdown_content(
    request: MarkdownValidationRequest,
    auth: AuthContext = Depends(get_auth_context),
):
    """Report heading-hierarchy and code-fence problems, with a fix when one is safe."""
    return build_validation_report(request.content)
