"""Configuration for structure normal and thickness estimation."""

from dataclasses import dataclass

from structure_errors import BadConfigurationError

MIN_WINDOW_FLOOR = 5
MAX_WINDOW_FLOOR = 50
THICKNESS_SENTINEL = 1.0


@dataclass
class StructureNormalConfig:
    """Per-invocation tunables.

    Defaults are the values offered by the interactive estimation dialog.
    """
    min_size: int = 100                # smallest window, in samples
    max_size: int = 1000               # largest window, in samples
    cutoff_distance: float = 10.0      # max search distance to the opposite surface
    compute_thickness: bool = True
    use_bias_correction: bool = True   # disabled automatically without sampled normals
    marginalize_alpha: bool = False    # integrate the likelihood over alpha instead of fixing it
    alpha_steps: int = 500
    thickness_neighbours: int = 10

    @property
    def degrees_of_freedom(self) -> int:
        """Wishart degrees of freedom, shared by every window of a run."""
        return self.max_size - self.min_size - 1

    @property
    def cutoff_squared(self) -> float:
        return float(self.cutoff_distance) ** 2

    def validate(self) -> None:
        if self.min_size < MIN_WINDOW_FLOOR:
            raise BadConfigurationError(
                f"min_size must be >= {MIN_WINDOW_FLOOR}, got {self.min_size}"
            )
        if self.max_size < MAX_WINDOW_FLOOR:
            raise BadConfigurationError(
                f"max_size must be >= {MAX_WINDOW_FLOOR}, got {self.max_size}"
            )
        if self.max_size <= self.min_size:
            raise BadConfigurationError(
                f"max_size ({self.max_size}) must be greater than "
                f"min_size ({self.min_size})"
            )
        # The 3x3 Wishart density needs more than 2 degrees of freedom.
        if self.degrees_of_freedom < 3:
            raise BadConfigurationError(
                f"max_size - min_size - 1 must be >= 3, got {self.degrees_of_freedom}"
            )
        if self.cutoff_distance < 0:
            raise BadConfigurationError(
                f"cutoff_distance must be >= 0, got {self.cutoff_distance}"
            )
        if self.alpha_steps < 1:
            raise BadConfigurationError("alpha_steps must be >= 1")
        if self.thickness_neighbours < 1:
            raise BadConfigurationError("thickness_neighbours must be >= 1")
