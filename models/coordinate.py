"""Immutable latitude/longitude value with great-circle distance."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any
import json
import math

EARTH_RADIUS_METERS = 6371000


def _is_number(value: Any) -> bool:
	return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass(frozen=True)
class Coordinate:
	latitude: float
	longitude: float

	@classmethod
	def parse(cls, raw: Any) -> Coordinate | None:
		"""Build a Coordinate from a `{latitude, longitude}` mapping or object.

		Returns None when either value is missing, non-numeric or outside
		the valid degree range.
		"""
		if raw is None:
			return None
		if isinstance(raw, Coordinate):
			return raw
		if isinstance(raw, dict):
			lat, lng = raw.get("latitude"), raw.get("longitude")
		else:
			lat, lng = getattr(raw, "latitude", None), getattr(raw, "longitude", None)
		if not (_is_number(lat) and _is_number(lng)):
			return None
		if not (-90 <= lat <= 90 and -180 <= lng <= 180):
			return None
		return cls(float(lat), float(lng))

	@classmethod
	def deserialize(cls, raw: str | None) -> Coordinate | None:
		if not raw:
			return None
		try:
			return cls.parse(json.loads(raw))
		except ValueError:
			return None

	def serialize(self) -> str:
		return json.dumps(self.to_document(), separators=(",", ":"))

	def to_document(self) -> dict[str, float]:
		return {"latitude": self.latitude, "longitude": self.longitude}

	def distance_to(self, other: Coordinate) -> float:
		"""Haversine distance to `other` in meters."""
		lat1, lat2 = math.radians(self.latitude), math.radians(other.latitude)
		delta_lat = math.radians(other.latitude - self.latitude)
		delta_lon = math.radians(other.longitude - self.longitude)

		a = (math.sin(delta_lat / 2) ** 2 +
			math.cos(lat1) * math.cos(lat2) * math.sin(delta_lon / 2) ** 2)
		c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
		return EARTH_RADIUS_METERS * c

	def is_in_range(self, other: Coordinate, meters: float) -> bool:
		return self.distance_to(other) <= meters
