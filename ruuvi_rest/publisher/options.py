"""
Pydantic models for publishing agent options.
Options are validated once, before the agent starts consuming samples.
"""

from enum import Enum
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..utils.config import ConfigurationError


class PublishMode(str, Enum):
    """Mutually exclusive batch flush policies."""
    SIZE = "size"
    TIME = "time"


class AgentOptions(BaseModel):
    """Batching and filtering options shared by every publishing sink."""
    known_devices_only: bool = Field(False, description="Discard samples from devices missing in the registry")
    publish_mode: PublishMode = Field(PublishMode.SIZE, description="Flush policy")
    batch_size: int = Field(0, description="Samples per batch in size mode, 0 or less publishes immediately")
    max_batch_age: Optional[int] = Field(None, ge=1, description="Maximum batch age in seconds (size mode)")
    average_interval: int = Field(60, ge=0, description="Averaging interval in seconds (time mode)")
    sample_rate: int = Field(0, description="Minimum seconds between readings kept per device, 0 or less keeps all")

    @field_validator('publish_mode', mode='before')
    @classmethod
    def publish_mode_lowercase(cls, v):
        """Accept publish modes in any case."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @model_validator(mode='after')
    def batch_age_requires_size_mode(self):
        """A batch age only makes sense for the size policy."""
        if self.max_batch_age is not None and self.publish_mode is not PublishMode.SIZE:
            raise ValueError('max_batch_age can only be used with the size publish mode')
        return self

    @property
    def effective_batch_size(self) -> int:
        """Batch size actually used by the size policy."""
        return max(1, self.batch_size)

    @property
    def effective_average_interval(self) -> int:
        """Interval actually used by the time policy."""
        return max(1, self.average_interval)

    @classmethod
    def create(cls, **values):
        """
        Build validated options.

        Raises:
            ConfigurationError: If any option is missing or invalid
        """
        try:
            return cls(**values)
        except ValidationError as e:
            problems = "\n".join(
                f"- {'.'.join(str(part) for part in error['loc']) or 'options'}: {error['msg']}"
                for error in e.errors()
            )
            raise ConfigurationError(f"Invalid publishing options:\n{problems}") from e


class RestAgentOptions(AgentOptions):
    """Options for publishing to an HTTP collection endpoint."""
    endpoint_url: str = Field(..., description="Collector endpoint receiving the JSON batches")
    trust_ssl: bool = Field(False, description="Skip TLS certificate validation")
    request_timeout: float = Field(10.0, gt=0, le=300, description="HTTP request timeout in seconds")
    retry_attempts: int = Field(0, ge=0, le=10, description="HTTP retries performed by the sink")

    @field_validator('endpoint_url')
    @classmethod
    def endpoint_must_be_http(cls, v):
        """Validate that the endpoint is an absolute HTTP(S) URL."""
        v = v.strip()
        parsed = urlparse(v)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ValueError(f'endpoint must be an absolute http or https URL, got {v!r}')
        return v
