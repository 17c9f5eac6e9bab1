# Copyright 2025 Allard Peper (Dragon Ace / DragonAceNL)
# Licensed under the Apache License, Version 2.0 (see LICENSE).

"""meshfix - Non-manifold cleanup, self-intersection removal and hole filling for triangle meshes."""

__version__ = "0.1.0"
