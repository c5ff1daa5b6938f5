"""
XEP-0115: Entity Capabilities verification hash.

The verification string is built exactly as XEP-0115 §5.1 describes for a
client without extended service discovery forms:

    category/type//name<feature1<feature2<...

hashed with SHA-1 (mandated by the legacy caps standard for interoperability,
not used for security here) and encoded as standard base64.
"""

import base64
import hashlib
from dataclasses import dataclass
from functools import cached_property, lru_cache
from typing import Iterable, Tuple

from .constants import DISCO_IDENTITY, DISCO_FEATURES, CAPS_NODE


def build_verification_string(identity: Tuple[str, str, str], features: Iterable[str]) -> str:
    """
    Build the XEP-0115 verification string.

    Args:
        identity: (category, type, name) tuple
        features: Feature namespaces, in any order (sorted here)

    Returns:
        Verification string S
    """
    category, itype, name = identity
    parts = [f"{category}/{itype}//{name}<"]
    for feature in sorted(features):
        parts.append(f"{feature}<")
    return ''.join(parts)


def compute_caps_hash(identity: Tuple[str, str, str], features: Iterable[str]) -> str:
    """
    Compute the XEP-0115 'ver' attribute.

    Pure and deterministic. Empty identity fields are hashed as-is, the
    caller guarantees a well-formed identity.

    Returns:
        base64(SHA-1(S))
    """
    verification = build_verification_string(identity, features)
    digest = hashlib.sha1(verification.encode('utf-8')).digest()
    return base64.b64encode(digest).decode('ascii')


@dataclass(frozen=True)
class CapabilitySet:
    """
    Advertised identity + features.

    Immutable: changing the feature set means building a new CapabilitySet,
    which carries its own (empty) hash cache.
    """
    identity: Tuple[str, str, str] = DISCO_IDENTITY
    features: Tuple[str, ...] = DISCO_FEATURES
    node: str = CAPS_NODE

    def __post_init__(self):
        # Keep features sorted and de-duplicated so disco#info answers match the hash
        object.__setattr__(self, 'features', tuple(sorted(set(self.features))))

    @cached_property
    def ver(self) -> str:
        """Verification hash, computed on first access and cached."""
        return compute_caps_hash(self.identity, self.features)

    def with_feature(self, feature: str) -> 'CapabilitySet':
        return CapabilitySet(self.identity, self.features + (feature,), self.node)

    def without_feature(self, feature: str) -> 'CapabilitySet':
        return CapabilitySet(
            self.identity,
            tuple(f for f in self.features if f != feature),
            self.node
        )


@lru_cache(maxsize=1)
def get_default_capabilities() -> CapabilitySet:
    """Process-wide capability set of this client."""
    return CapabilitySet()
