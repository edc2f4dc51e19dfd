"""
Profile and free-text validation.

Pure checks for user-entered text: profile fields, social links, campaign
copy. ``sanitize_input`` strips markup and script vectors; the
``is_valid_*`` predicates reject input that sanitization would change.
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urlparse

from workhub_kernel.domain.validation import ValidationError, ValidationResult

SOCIAL_PLATFORMS: tuple[str, ...] = ("linkedin", "twitter", "instagram", "youtube", "other")
CAMPAIGN_CATEGORIES: frozenset[str] = frozenset(
    {"Social Media", "Survey", "Testing", "Content", "Other"}
)

_DANGEROUS_PREFIX = re.compile(r"^(javascript|vbscript|data|file):", re.IGNORECASE)
_SCRIPT_BLOCK = re.compile(
    r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE
)
_PROTOCOLS = re.compile(r"(javascript|vbscript|data|file):", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+\s*=\s*[\"']?[^\"'\s>]*[\"']?", re.IGNORECASE)
_HTML_TAG = re.compile(r"<[^>]*>")
_SCRIPT_CALLS = re.compile(
    r"(alert\(|prompt\(|confirm\(|expression\(|eval\(|onerror|onload"
    r"|onmouseover|onmouseout|onfocus|onblur)",
    re.IGNORECASE,
)

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_NAME = re.compile(r"^[a-zA-Z\s\-']+$")
_PASSWORD = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$"
)
_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp")
_IMAGE_HOST = re.compile(
    r"(\.(jpg|jpeg|png|gif|webp|bmp)|imgur\.com|cloudinary\.com|images\.)",
    re.IGNORECASE,
)
_UNSAFE_MARKERS = ("javascript:", "data:", "vbscript:")


def sanitize_input(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    if _DANGEROUS_PREFIX.match(value.strip()):
        return ""

    result = _SCRIPT_BLOCK.sub("", value)
    result = _PROTOCOLS.sub("", result)
    result = _EVENT_HANDLER.sub("", result)
    result = _HTML_TAG.sub("", result)
    result = _SCRIPT_CALLS.sub("", result)
    return result.strip()


def is_valid_url(url: Any) -> bool:
    """Only absolute http(s) URLs with a host."""
    if not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_valid_email(email: Any) -> bool:
    return isinstance(email, str) and bool(_EMAIL.match(email))


def is_valid_name(name: Any) -> bool:
    if not isinstance(name, str) or not _NAME.match(name):
        return False
    return 2 <= len(name.strip()) <= 50


def is_valid_full_name(full_name: Any) -> bool:
    """At least a first and a last name, each two characters or longer."""
    if not isinstance(full_name, str):
        return False
    trimmed = full_name.strip()
    parts = trimmed.split()
    if len(parts) < 2 or any(len(part) < 2 for part in parts):
        return False
    return is_valid_name(trimmed)


def is_valid_bio(bio: Any) -> bool:
    if not isinstance(bio, str) or len(bio) > 200:
        return False
    if _HTML_TAG.search(bio):
        return False
    return not any(marker in bio for marker in _UNSAFE_MARKERS)


def _has_unsafe_marker(url: str) -> bool:
    lowered = url.lower()
    return any(marker in lowered for marker in _UNSAFE_MARKERS)


def is_valid_social_link(link: Any) -> bool:
    if not link:
        return True
    return is_valid_url(link) and not _has_unsafe_marker(link)


def is_valid_profile_image(image_url: Any) -> bool:
    if not image_url:
        return True
    if not is_valid_url(image_url) or _has_unsafe_marker(image_url):
        return False
    lowered = image_url.lower()
    return lowered.endswith(_IMAGE_EXTENSIONS) or bool(_IMAGE_HOST.search(lowered))


def is_valid_password(password: Any) -> bool:
    return isinstance(password, str) and bool(_PASSWORD.match(password))


def _present(value: Any) -> bool:
    return value is not None and value != ""


def validate_user_profile(profile: dict[str, Any]) -> ValidationResult:
    """Validate the editable profile fields that are present in ``profile``."""
    errors: list[ValidationError] = []

    if _present(profile.get("fullName")) and not is_valid_name(profile["fullName"]):
        errors.append(
            ValidationError(
                "INVALID_NAME",
                "Full name must contain only letters, spaces, hyphens, and "
                "apostrophes, and be between 2-50 characters",
                "fullName",
            )
        )
    if _present(profile.get("bio")) and not is_valid_bio(profile["bio"]):
        errors.append(
            ValidationError(
                "INVALID_BIO",
                "Bio must be less than 200 characters and not contain HTML tags",
                "bio",
            )
        )
    if _present(profile.get("profileImage")) and not is_valid_profile_image(
        profile["profileImage"]
    ):
        errors.append(
            ValidationError(
                "INVALID_IMAGE",
                "Profile image URL must be a valid image URL",
                "profileImage",
            )
        )

    links = profile.get("socialLinks")
    if isinstance(links, dict):
        for platform in SOCIAL_PLATFORMS:
            link = links.get(platform)
            if _present(link) and not is_valid_social_link(link):
                errors.append(
                    ValidationError(
                        "INVALID_LINK",
                        f"{platform} URL must be a valid URL and not contain "
                        "malicious protocols",
                        f"socialLinks.{platform}",
                    )
                )
    return ValidationResult.from_errors(errors)


def sanitize_profile_data(profile: dict[str, Any]) -> dict[str, Any]:
    sanitized: dict[str, Any] = {}
    for key in ("fullName", "bio", "profileImage"):
        if profile.get(key) is not None:
            sanitized[key] = sanitize_input(profile[key])

    links = profile.get("socialLinks")
    if isinstance(links, dict):
        sanitized["socialLinks"] = {
            platform: sanitize_input(links[platform])
            for platform in SOCIAL_PLATFORMS
            if links.get(platform) is not None
        }
    return sanitized


def validate_and_sanitize_profile(
    profile: dict[str, Any],
) -> tuple[ValidationResult, dict[str, Any]]:
    result = validate_user_profile(profile)
    if not result:
        return result, {}
    return result, sanitize_profile_data(profile)


# ---------------------------------------------------------------------------
# Campaign copy
# ---------------------------------------------------------------------------


def _is_clean_text(text: Any, min_len: int, max_len: int) -> bool:
    if not isinstance(text, str):
        return False
    trimmed = text.strip()
    if not min_len <= len(trimmed) <= max_len:
        return False
    return sanitize_input(text) == trimmed


def is_valid_campaign_title(title: Any) -> bool:
    return _is_clean_text(title, 3, 100)


def is_valid_campaign_description(description: Any) -> bool:
    return _is_clean_text(description, 10, 2000)


def is_valid_campaign_instructions(instructions: Any) -> bool:
    return _is_clean_text(instructions, 10, 5000)


def is_valid_campaign_category(category: Any) -> bool:
    return category in CAMPAIGN_CATEGORIES
