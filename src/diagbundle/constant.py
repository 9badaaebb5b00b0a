from __future__ import annotations

import importlib.metadata

NAME = importlib.metadata.metadata("diagbundle")["Name"]
VERSION = importlib.metadata.version("diagbundle")
