"""
Validation service for request validation.

Validates the inbound generate request before any generation row is created
and the target shop domain.
"""

import re
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from site_cloner.models.schemas import GenerateRequest
from site_cloner.utils.logger import get_logger
from site_cloner.utils.retry import ValidationError

logger = get_logger(__name__)


class ValidationService:
    """Validates pipeline inputs."""

    SHOP_DOMAIN_PATTERN = re.compile(r"^[a-z0-9][a-z0-9\-]*\.myshopify\.com$")

    def validate_generate_request(self, data: dict[str, Any]) -> GenerateRequest:
        """
        Parse a ``{"url": ...}`` request body.

        Raises:
            ValidationError: If ``url`` is missing or not an http(s) URL
        """
        try:
            return GenerateRequest.model_validate(data)
        except PydanticValidationError as e:
            message = ", ".join(err["msg"] for err in e.errors()) or "Invalid URL format"
            logger.warning("Generate request validation failed", error=message)
            raise ValidationError(message) from e

    def validate_shop_domain(self, shop_domain: str) -> str:
        """
        Raises:
            ValidationError: If the domain is empty or not a ``*.myshopify.com`` host
        """
        if not shop_domain:
            raise ValidationError("Shop domain is required")
        domain = shop_domain.strip().lower()
        if not self.SHOP_DOMAIN_PATTERN.match(domain):
            raise ValidationError(f"Invalid shop domain: {shop_domain}")
        return domain
