"""Rule pack loader from JSON."""

import json
import logging
from pathlib import Path

from ..errors import ConfigurationError
from ..models.rule_pack import RulePack

logger = logging.getLogger(__name__)

DEFAULT_RULE_PACK_FILE = "rule_pack_v1.json"


def get_default_rule_pack_path() -> Path:
    """Get the path to the rule pack bundled with the package."""
    return Path(__file__).parent / DEFAULT_RULE_PACK_FILE


def parse_rule_pack(document: str) -> RulePack:
    """Parse a JSON document into a validated rule pack.

    Raises:
        ConfigurationError: if the document is not JSON or fails validation
    """
    try:
        data = json.loads(document)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Rule pack is not valid JSON: {e}") from e
    return RulePack.from_dict(data)


def load_rule_pack(path: Path | None = None) -> RulePack:
    """Load a rule pack from a JSON file.

    Args:
        path: File to load. Uses the bundled default if not provided.

    Returns:
        The validated, frozen rule pack
    """
    if path is None:
        path = get_default_rule_pack_path()

    if not path.exists():
        raise ConfigurationError(f"Rule pack file not found: {path}")

    with open(path) as f:
        pack = parse_rule_pack(f.read())

    logger.debug("Loaded rule pack %s from %s", pack.version, path)
    return pack


class RulePackRegistry:
    """Process-wide cache of loaded rule packs, one instance per version.

    Registered packs are never replaced: loading a document whose version is
    already registered with different content is a configuration error, so
    a version string always names exactly one behaviour.
    """

    def __init__(self):
        self._packs: dict[str, RulePack] = {}
        self._default_version: str | None = None

    def __contains__(self, version: str) -> bool:
        return version in self._packs

    def __len__(self) -> int:
        return len(self._packs)

    def register(self, pack: RulePack) -> RulePack:
        existing = self._packs.get(pack.version)
        if existing is None:
            self._packs[pack.version] = pack
            return pack
        if existing.to_dict() != pack.to_dict():
            raise ConfigurationError(
                f"Rule pack version {pack.version} is already loaded with different content"
            )
        return existing

    def register_document(self, document: str) -> RulePack:
        """Parse and register a JSON document, returning the cached instance."""
        return self.register(parse_rule_pack(document))

    def get(self, version: str) -> RulePack:
        try:
            return self._packs[version]
        except KeyError:
            raise ConfigurationError(f"Rule pack version {version} is not loaded") from None

    def default(self) -> RulePack:
        """Return the bundled rule pack, loading it on first use."""
        if self._default_version is None:
            self._default_version = self.register(load_rule_pack()).version
        return self._packs[self._default_version]

    def versions(self) -> list[str]:
        return sorted(self._packs)
