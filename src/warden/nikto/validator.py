"""
Scan request model and options validation.

A ScanRequest is the normalized, immutable form of a caller's scan options.
Construction always runs the validators below, so any request that reaches
the command builder is internally consistent (e.g. never both ssl and nossl).
"""

import re
from typing import Any, Literal, Mapping, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from ..errors import ScanValidationError


URL_PATTERN = re.compile(r"^https?://.+")
IP_PATTERN = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$")
HOSTNAME_PATTERN = re.compile(
    r"^[a-zA-Z0-9][a-zA-Z0-9-]{0,61}[a-zA-Z0-9]?"
    r"(\.[a-zA-Z0-9][a-zA-Z0-9-]{0,61}[a-zA-Z0-9]?)*$"
)


def _is_valid_target(value: str) -> bool:
    """Accept an http(s) URL, IPv4 address, hostname, or host:port"""
    parts = value.split(":")
    if len(parts) == 2 and parts[0] and parts[1]:
        host, port = parts
        if (
            (HOSTNAME_PATTERN.match(host) or IP_PATTERN.match(host))
            and port.isdigit()
            and 0 < int(port) <= 65535
        ):
            return True

    return bool(
        URL_PATTERN.match(value)
        or IP_PATTERN.match(value)
        or HOSTNAME_PATTERN.match(value)
    )


class ScanRequest(BaseModel):
    """
    Validated Nikto scan options.

    Instances are frozen once created. ``port`` and ``timeout`` stay None when
    the caller did not give them; the command builder then relies on Nikto's
    own port default and the configured timeout respectively.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    target: str
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    ssl: bool = False
    nossl: bool = False
    nolookup: bool = False
    vhost: Optional[str] = None
    timeout: Optional[int] = Field(default=None, gt=0)
    output_format: Literal["json", "text"] = Field(
        default="text",
        validation_alias=AliasChoices("output_format", "outputFormat"),
    )
    dry_run: bool = Field(
        default=False,
        validation_alias=AliasChoices("dry_run", "dryRun"),
    )

    @field_validator("port", "timeout", "vhost", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("ssl", "nossl", "nolookup", "dry_run", mode="before")
    @classmethod
    def _blank_to_false(cls, value: Any) -> Any:
        if value is None:
            return False
        if isinstance(value, str):
            value = value.strip().lower()
            if value == "":
                return False
        return value

    @field_validator("target")
    @classmethod
    def _check_target(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Target is required")
        if not _is_valid_target(value):
            raise ValueError("Invalid target: must be a valid URL, IP address, or hostname")
        return value

    @field_validator("vhost")
    @classmethod
    def _check_vhost(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not HOSTNAME_PATTERN.match(value):
            raise ValueError("Invalid vhost: must be a valid hostname")
        return value

    @model_validator(mode="after")
    def _check_ssl_flags(self) -> "ScanRequest":
        if self.ssl and self.nossl:
            raise ValueError("Cannot specify both ssl and nossl options")
        return self


def validate_scan_options(
    options: Mapping[str, Any],
    default_timeout: Optional[int] = None,
) -> ScanRequest:
    """
    Validate raw scan options and fill in the configured timeout.

    Args:
        options: Loosely typed options (strings are coerced where sensible)
        default_timeout: Timeout used when the options carry none

    Returns:
        Frozen ScanRequest

    Raises:
        ScanValidationError: If any option is invalid
    """
    try:
        request = ScanRequest.model_validate(dict(options))
    except ValidationError as e:
        message = ", ".join(
            f"{'.'.join(str(loc) for loc in err['loc']) or 'options'}: {err['msg']}"
            for err in e.errors()
        )
        raise ScanValidationError(f"Validation error: {message}") from e

    if request.timeout is None and default_timeout is not None:
        request = request.model_copy(update={"timeout": default_timeout})

    return request
