"""Summary report generation for the evacuation simulation."""

from typing import List, Dict, Optional, Tuple, TYPE_CHECKING
from pathlib import Path

if TYPE_CHECKING:
    from ..model.engine import EvacuationResult
    from ..model.state import SimulationState


class Reporter:
    """Generates summary statistics and formatted text report."""

    # Steps without an evacuation while individuals remain before a jam is counted.
    JAM_STEPS = 10

    def __init__(self, config_path: str, seed: Optional[int]):
        self.config_path = config_path
        self.seed = seed
        self.step_metrics: List[Dict] = []
        self.peak_not_safe = 0
        self.jam_events = 0
        self.first_evacuation_step: Optional[int] = None
        self._prev_evacuated = 0
        self._stagnation_steps = 0
        # room name -> (peak occupants, peak density)
        self.room_peaks: Dict[str, Tuple[int, float]] = {}

    def update(self, state: "SimulationState") -> None:
        """Accumulate metrics per step."""
        self.step_metrics.append(state.metrics.copy())

        not_safe = int(state.metrics.get('not_safe', 0))
        self.peak_not_safe = max(self.peak_not_safe, not_safe)

        evacuated = int(state.metrics.get('evacuated', 0))
        if evacuated > 0 and self.first_evacuation_step is None:
            self.first_evacuation_step = state.step

        # A jam: individuals left but nobody got out for a while
        if not_safe > 0 and evacuated == self._prev_evacuated:
            self._stagnation_steps += 1
            if self._stagnation_steps >= self.JAM_STEPS:
                self.jam_events += 1
                self._stagnation_steps = 0
        else:
            self._stagnation_steps = 0
        self._prev_evacuated = evacuated

        for room in state.rooms:
            occupants, density = self.room_peaks.get(room.name, (0, 0.0))
            self.room_peaks[room.name] = (max(occupants, room.occupants),
                                          max(density, room.density))

    def evacuation_curve(self) -> List[int]:
        """Cumulative number of evacuated individuals per step."""
        return [int(m.get('evacuated', 0)) for m in self.step_metrics]

    def step_reaching(self, share: float, total: int) -> Optional[int]:
        """First step at which the given share of all individuals was evacuated."""
        if total <= 0:
            return None
        for step, evacuated in enumerate(self.evacuation_curve(), start=1):
            if evacuated >= share * total:
                return step
        return None

    def generate_summary(self, result: "EvacuationResult",
                         output_dir: Path,
                         csv_enabled: bool,
                         record_enabled: bool) -> str:
        """Returns formatted text report."""
        total = result.initial_individuals
        evacuated_pct = (result.evacuated / total * 100) if total > 0 else 0
        throughput = result.evacuated / max(1, result.steps)
        first = self.first_evacuation_step
        half = self.step_reaching(0.5, total)

        lines = [
            "",
            "=" * 80,
            "                    EVACUATION CA SIMULATION REPORT",
            "=" * 80,
            f"Configuration: {self.config_path}",
            f"Random Seed: {self.seed if self.seed is not None else 'None (random)'}",
            "",
            "SIMULATION METRICS",
            "-" * 40,
            f"Total Steps:           {result.steps} ({result.seconds:.1f} s)",
            f"Evacuated:             {result.evacuated} / {total} ({evacuated_pct:.1f}%)",
            f"Safe (not evacuated):  {result.safe}",
            f"Dead (unreachable):    {result.dead_exit_unreachable}",
            f"Dead (no time):        {result.dead_not_enough_time}",
            f"First Evacuation:      {'step ' + str(first) if first is not None else '-'}",
            f"Half Evacuated:        {'step ' + str(half) if half is not None else '-'}",
            f"Peak Not Safe:         {self.peak_not_safe}",
            f"Throughput:            {throughput:.4f} individuals/step",
            "",
            "EMERGENT BEHAVIORS DETECTED",
            "-" * 40,
            f"[{'X' if self.jam_events > 0 else ' '}] Jam Events: {self.jam_events} detected",
            "",
            "ROOMS (peak occupants, peak density)",
            "-" * 40,
        ]
        for name, (occupants, density) in self.room_peaks.items():
            lines.append(f"{name:<22} {occupants:>5}  {density * 100:5.1f}%")
        lines += [
            "",
            "OUTPUT FILES",
            "-" * 40,
        ]

        if csv_enabled:
            lines.append(f"CSV Log:    {output_dir / 'simulation_log.csv'}")
        else:
            lines.append("CSV Log:    (disabled)")

        if record_enabled:
            lines.append(f"Recording:  {output_dir / 'recording.csv'}")
        else:
            lines.append("Recording:  (disabled)")

        lines.append("=" * 80)

        return "\n".join(lines)
