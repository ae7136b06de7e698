from __future__ import annotations

import logging


_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = "INFO") -> None:
	"""Configure the ``relay`` logger tree once; repeated calls only adjust the level."""
	root = logging.getLogger("relay")
	root.setLevel(getattr(logging, level.upper(), logging.INFO))
	if any(getattr(handler, "_relay_handler", False) for handler in root.handlers):
		return
	handler = logging.StreamHandler()
	handler.setFormatter(logging.Formatter(_FORMAT))
	handler._relay_handler = True  # type: ignore[attr-defined]
	root.addHandler(handler)
