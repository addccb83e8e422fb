"""
Data Models Module

This module defines Pydantic models for the JSON bodies the relay
synthesizes itself. Successful upstream bodies are relayed untouched and
have no model here.

Models are organized by functional area:
- Error mapping table entries
- Normalized error envelope (mapped, unreachable and internal failures)
- Health check
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Error Mapping Models
# ============================================================================

class ErrorMappingEntry(BaseModel):
    """One row of the static upstream error table."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="Machine-readable error type")
    category: str = Field(..., description="Coarse error category tag")
    message: str = Field(..., description="Human-readable message")
    suggestion: str = Field(..., description="Remediation hint for the caller")


# ============================================================================
# Normalized Error Models
# ============================================================================

class ErrorDetails(BaseModel):
    """Diagnostic block of a normalized error."""
    reason: str = Field(..., description="Raw upstream message or generated reason")
    suggestion: str = Field(..., description="Remediation hint")
    originalResponse: Any = Field(
        None,
        description="Verbatim upstream body; present only for mapped upstream errors",
    )


class ErrorData(BaseModel):
    """Structured data block of a normalized error."""
    status: str = Field(..., description="Always 'ERROR'")
    type: str = Field(..., description="Mapped error type")
    code: str = Field(..., description="Original upstream code, or a PROXY_* code")
    errorData: str = Field(..., description="Composed error text")
    details: ErrorDetails


class NormalizedError(BaseModel):
    """Uniform error envelope returned to the caller."""
    code: int = Field(..., description="Integer form of the code, -1 if unparseable")
    msg: str = Field(..., description="'<category>: <message>'")
    data: ErrorData
    timestamp: int = Field(..., description="Milliseconds since epoch")

    def to_payload(self) -> dict:
        """
        Serialize for the response body.

        Fields left unset (originalResponse on synthetic errors) are omitted,
        so every field the builders pass explicitly must be required.
        """
        return self.model_dump(exclude_unset=True)


# ============================================================================
# Health Check Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    message: str = Field(..., description="Liveness message")
