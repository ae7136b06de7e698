"""Model configuration lookup.

Models are declared as environment key groups ``MODEL_<n>_NAME``,
``MODEL_<n>_ID`` and ``MODEL_<n>_HOST``. The integer ``<n>`` is the model's
public index, so deleting one group never renumbers the others. Broken groups
are reported as issues instead of failing the whole set.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from relay.backend.streaming.errors import ModelNotFound
from relay.backend.streaming.types import ResolvedModel


_KEY_RE = re.compile(r"^MODEL_(\d+)_(NAME|ID|HOST)$")
_FIELDS = ("NAME", "ID", "HOST")


@dataclass
class RegistrySnapshot:
	models: List[ResolvedModel] = field(default_factory=list)
	issues: List[str] = field(default_factory=list)

	def get(self, index: int) -> Optional[ResolvedModel]:
		for model in self.models:
			if model.index == index:
				return model
		return None


def load_registry(env: Optional[Mapping[str, str]] = None) -> RegistrySnapshot:
	source = os.environ if env is None else env
	groups: Dict[int, Dict[str, str]] = {}
	for key, value in source.items():
		match = _KEY_RE.match(key)
		if not match:
			continue
		groups.setdefault(int(match.group(1)), {})[match.group(2)] = (value or "").strip()

	snapshot = RegistrySnapshot()
	for index in sorted(groups):
		entry = groups[index]
		missing = [name for name in _FIELDS if not entry.get(name)]
		if len(missing) == len(_FIELDS):
			continue
		if missing:
			fields = ", ".join(f"MODEL_{index}_{name}" for name in missing)
			snapshot.issues.append(f"Model {index} is missing {fields}.")
			continue
		host = entry["HOST"].rstrip("/")
		if not host.startswith(("http://", "https://")):
			snapshot.issues.append(
				f"Model {index} has an invalid MODEL_{index}_HOST '{entry['HOST']}' (expected http:// or https://)."
			)
			continue
		snapshot.models.append(
			ResolvedModel(index=index, name=entry["NAME"], id=entry["ID"], host=host)
		)
	return snapshot


def resolve(snapshot: RegistrySnapshot, index: int) -> ResolvedModel:
	model = snapshot.get(index)
	if model is None:
		raise ModelNotFound(index)
	return model


def default_model(snapshot: RegistrySnapshot) -> ResolvedModel:
	if not snapshot.models:
		raise ModelNotFound()
	return snapshot.models[0]
