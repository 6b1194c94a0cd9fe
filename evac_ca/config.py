"""Configuration dataclasses and YAML loader for evacuation scenarios."""

from dataclasses import dataclass, field
from typing import List, Tuple, Dict, Any, Optional
from pathlib import Path
import yaml


ORDERS = ("in_order", "random", "front_to_back", "back_to_front")

DEFAULT_PRIMARY = ["initial_potential"]
DEFAULT_LOOP = ["reaction_room", "movement", "save", "evacuate"]


@dataclass
class ParameterSet:
    static_strength: float = 3.0          # kS, attraction of the static potential
    dynamic_strength: float = 0.5         # kD, attraction of the dynamic potential
    probability_dynamic_increase: float = 0.05
    probability_dynamic_decrease: float = 0.1
    dynamic_potential_max: int = 30

    def __post_init__(self):
        for name in ('probability_dynamic_increase', 'probability_dynamic_decrease'):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")


@dataclass
class WallSpec:
    wall_type: str  # "rectangle" or "points"
    data: Dict[str, Any]


@dataclass
class DoorSpec:
    x: int
    y: int
    target_room: int
    target_x: int
    target_y: int


@dataclass
class ZoneSpec:
    """Rectangle of cells with a reduced speed factor (stairs, debris)."""
    x: int
    y: int
    width: int
    height: int
    speed_factor: float


@dataclass
class RoomSpec:
    room_id: int
    floor: int
    width: int
    height: int
    x_offset: int = 0
    y_offset: int = 0
    name: str = ""
    walls: List[WallSpec] = field(default_factory=list)
    exits: List[Tuple[int, int]] = field(default_factory=list)
    save_cells: List[Tuple[int, int]] = field(default_factory=list)
    doors: List[DoorSpec] = field(default_factory=list)
    slow_zones: List[ZoneSpec] = field(default_factory=list)


@dataclass
class IndividualSpec:
    room: int
    x: int
    y: int
    relative_speed: float = 1.0
    reaction_time: float = 0.0
    assignment_type: str = "default"


@dataclass
class SpawnSpec:
    """Randomly placed individuals inside one room."""
    room: int
    count: int
    relative_speed: Tuple[float, float] = (0.7, 1.0)
    reaction_time: Tuple[float, float] = (0.0, 0.0)
    assignment_type: str = "default"


@dataclass
class RuleConfig:
    primary: List[str] = field(default_factory=lambda: list(DEFAULT_PRIMARY))
    loop: List[str] = field(default_factory=lambda: list(DEFAULT_LOOP))


@dataclass
class ScenarioConfig:
    max_steps: int
    floors: List[str]
    rooms: List[RoomSpec]
    parameters: ParameterSet = field(default_factory=ParameterSet)
    individuals: List[IndividualSpec] = field(default_factory=list)
    spawn: List[SpawnSpec] = field(default_factory=list)
    rules: RuleConfig = field(default_factory=RuleConfig)
    order: str = "in_order"
    absolute_max_speed: float = 1.0

    # Export flags (can be overridden by CLI)
    csv_enabled: bool = True
    record_enabled: bool = False
    quiet: bool = False
    seed: Optional[int] = None
    out_dir: Path = field(default_factory=lambda: Path("./output"))

    def __post_init__(self):
        if self.order not in ORDERS:
            raise ValueError(f"Unknown order '{self.order}', expected one of {ORDERS}")


def _parse_walls(walls_raw: List[Dict]) -> List[WallSpec]:
    """Parse wall specifications from raw YAML data."""
    walls = []
    for w in walls_raw:
        wall_type = w.get('type', 'rectangle')
        if wall_type == 'rectangle':
            data = {
                'x': w['x'],
                'y': w['y'],
                'width': w['width'],
                'height': w['height']
            }
        elif wall_type == 'points':
            data = {'coords': [tuple(c) for c in w['coords']]}
        else:
            raise ValueError(f"Unknown wall type: {wall_type}")
        walls.append(WallSpec(wall_type=wall_type, data=data))
    return walls


def _parse_doors(doors_raw: List[Dict]) -> List[DoorSpec]:
    """Parse door links; `to` names the linked door cell of another room."""
    return [
        DoorSpec(
            x=d['at'][0],
            y=d['at'][1],
            target_room=d['to']['room'],
            target_x=d['to']['at'][0],
            target_y=d['to']['at'][1]
        )
        for d in doors_raw
    ]


def _parse_rooms(rooms_raw: List[Dict]) -> List[RoomSpec]:
    """Parse room specifications from raw YAML data."""
    rooms = []
    for r in rooms_raw:
        rooms.append(RoomSpec(
            room_id=r['id'],
            floor=r.get('floor', 0),
            width=r['width'],
            height=r['height'],
            x_offset=r.get('x_offset', 0),
            y_offset=r.get('y_offset', 0),
            name=r.get('name', ''),
            walls=_parse_walls(r.get('walls', [])),
            exits=[tuple(c) for c in r.get('exits', [])],
            save_cells=[tuple(c) for c in r.get('save_cells', [])],
            doors=_parse_doors(r.get('doors', [])),
            slow_zones=[
                ZoneSpec(x=z['x'], y=z['y'], width=z['width'], height=z['height'],
                         speed_factor=z['speed_factor'])
                for z in r.get('slow_zones', [])
            ]
        ))
    return rooms


def _parse_individuals(individuals_raw: List[Dict]) -> List[IndividualSpec]:
    """Parse explicitly placed individuals."""
    return [
        IndividualSpec(
            room=i['room'],
            x=i['x'],
            y=i['y'],
            relative_speed=i.get('speed', 1.0),
            reaction_time=i.get('reaction_time', 0.0),
            assignment_type=i.get('type', 'default')
        )
        for i in individuals_raw
    ]


def _parse_spawn(spawn_raw: List[Dict]) -> List[SpawnSpec]:
    """Parse random spawn specifications."""
    return [
        SpawnSpec(
            room=s['room'],
            count=s['count'],
            relative_speed=tuple(s.get('speed', (0.7, 1.0))),
            reaction_time=tuple(s.get('reaction_time', (0.0, 0.0))),
            assignment_type=s.get('type', 'default')
        )
        for s in spawn_raw
    ]


def load_config(config_path: Path) -> ScenarioConfig:
    """Load and validate YAML configuration file."""
    with open(config_path) as f:
        raw = yaml.safe_load(f)
    return parse_config(raw)


def parse_config(raw: Dict[str, Any]) -> ScenarioConfig:
    """Build a scenario from already decoded YAML data."""
    params_raw = raw.get('parameters', {})
    parameters = ParameterSet(
        static_strength=params_raw.get('static_strength', 3.0),
        dynamic_strength=params_raw.get('dynamic_strength', 0.5),
        probability_dynamic_increase=params_raw.get('probability_dynamic_increase', 0.05),
        probability_dynamic_decrease=params_raw.get('probability_dynamic_decrease', 0.1),
        dynamic_potential_max=params_raw.get('dynamic_potential_max', 30)
    )

    rules_raw = raw.get('rules', {})
    rules = RuleConfig()
    if 'primary' in rules_raw:
        rules.primary = list(rules_raw['primary'])
    if 'loop' in rules_raw:
        rules.loop = list(rules_raw['loop'])

    # Parse simulation config
    sim_raw = raw['simulation']

    # Parse export config (optional)
    export_raw = raw.get('export', {})

    return ScenarioConfig(
        max_steps=sim_raw['max_steps'],
        floors=list(raw.get('floors', ['Ground floor'])),
        rooms=_parse_rooms(raw['rooms']),
        parameters=parameters,
        individuals=_parse_individuals(raw.get('individuals', [])),
        spawn=_parse_spawn(raw.get('spawn', [])),
        rules=rules,
        order=sim_raw.get('order', 'in_order'),
        absolute_max_speed=sim_raw.get('absolute_max_speed', 1.0),
        seed=sim_raw.get('seed'),
        csv_enabled=export_raw.get('csv', True),
        record_enabled=export_raw.get('record', False)
    )
