"""Fixed colour palettes and nearest-colour quantisation."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

RGB = tuple[int, int, int]

# Named palettes: name -> hex list. The first entry is the background
# colour; cells quantised to it are never drawn.
NAMED_PALETTES: dict[str, list[str]] = {
    "primary": [
        "#000000", "#000000", "#4285F4", "#EA4335",
        "#FBBC05", "#34A853", "#F8F9FA",
    ],
    "mono": ["#000000", "#FFFFFF"],
    "ember": ["#000000", "#FF7F11", "#ACBFA4", "#E2E8CE"],
    "lagoon": ["#000000", "#09637E", "#088395", "#7AB2B2", "#EBF4F6"],
    "solstice": ["#000000", "#3D45AA", "#DA3D20", "#F8843F", "#FFF19B"],
}


def _hex_to_rgb(hex_str: str) -> RGB:
    """Parse '#RRGGBB' to an ``(r, g, b)`` tuple."""
    h = hex_str.lstrip("#")
    return (int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16))


class Palette:
    """An ordered, non-empty set of RGB colours.

    Entry 0 is the designated background colour. Nearest-colour lookups
    use squared Euclidean distance in RGB and resolve ties in palette
    order (first minimal entry wins).
    """

    def __init__(self, colors: Sequence[Sequence[int]]) -> None:
        if len(colors) == 0:
            msg = "Palette must contain at least one colour"
            raise ValueError(msg)
        self.colors: tuple[RGB, ...] = tuple(
            (int(c[0]), int(c[1]), int(c[2])) for c in colors
        )
        self.array = np.array(self.colors, dtype=np.uint8)

    @classmethod
    def from_hex(cls, hex_colors: Sequence[str]) -> Palette:
        return cls([_hex_to_rgb(h) for h in hex_colors])

    @classmethod
    def named(cls, name: str) -> Palette:
        hexes = NAMED_PALETTES.get(name)
        if hexes is None:
            available = ", ".join(sorted(NAMED_PALETTES))
            msg = f"Unknown palette '{name}'. Available: {available}"
            raise ValueError(msg)
        return cls.from_hex(hexes)

    def __len__(self) -> int:
        return len(self.colors)

    @property
    def background(self) -> RGB:
        return self.colors[0]

    def nearest_index(self, r: float, g: float, b: float) -> int:
        best = float("inf")
        pick = 0
        for i, (pr, pg, pb) in enumerate(self.colors):
            dr = r - pr
            dg = g - pg
            db = b - pb
            d2 = dr * dr + dg * dg + db * db
            if d2 < best:
                best = d2
                pick = i
        return pick

    def nearest(self, rgb: Sequence[float]) -> RGB:
        return self.colors[self.nearest_index(rgb[0], rgb[1], rgb[2])]

    def is_background(self, rgb: Sequence[int]) -> bool:
        bg = self.colors[0]
        return rgb[0] == bg[0] and rgb[1] == bg[1] and rgb[2] == bg[2]

    def background_mask(self, raster: np.ndarray) -> np.ndarray:
        """Boolean (H, W) mask of pixels exactly equal to the background."""
        return np.all(raster[..., :3] == self.array[0], axis=-1)


DEFAULT_PALETTE = Palette.named("primary")
