"""MSI install topology resolver and lifecycle verifier.

Core design goals:
- Pure topology resolution (configuration in, locations out)
- Stable entry points through a stub, swappable versioned payload
- One-directional install -> verify -> uninstall passes, strictly sequential
- Every failed check reported, not just the first
- Centralized logging
"""

from .topology import resolve_topology as resolve_topology
from .version_compliance import to_compliant_version as to_compliant_version

__all__ = ["resolve_topology", "to_compliant_version"]
