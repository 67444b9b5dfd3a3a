from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class Location:
    lat: float
    lng: float
    address: str
    area: str

    @property
    def label(self) -> str:
        return f'{self.address}, {self.area}'


class LocationProvider(Protocol):
    def pick_location(self, *, rng: random.Random) -> Location: ...
