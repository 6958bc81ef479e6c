"""Table construction: world, static arena and dice bodies."""

import logging
import math
from dataclasses import dataclass

from ..config import PhysicsConfig, TableConfig
from ..physics import ContactMaterial, Material, PhysicsWorld, Pose, RigidBody, vecmath

logger = logging.getLogger(__name__)

GROUND = Material("ground")
DICE = Material("dice")
WALL = Material("wall")


@dataclass
class Table:
    """The arena and the dice rolling on it."""

    world: PhysicsWorld
    dice: list[RigidBody]
    field_radius: float
    dice_size: float

    @property
    def half_extent(self) -> float:
        return self.dice_size / 2

    def describe(self) -> dict:
        """Static geometry for clients."""
        return {
            "num_dice": len(self.dice),
            "field_radius": self.field_radius,
            "dice_size": self.dice_size,
            "planes": [
                {"point": plane.point.tolist(), "normal": plane.normal.tolist()}
                for plane in self.world.planes
            ],
        }


def _rest_position(index: int, count: int, dice_size: float) -> tuple[float, float, float]:
    """Dice start lying in a row across the middle of the arena."""
    return ((index - (count - 1) / 2) * dice_size * 1.5, dice_size / 2, 0.0)


def build_table(table_config: TableConfig, physics_config: PhysicsConfig) -> Table:
    """Create the world with ground, four walls and the dice."""
    world = PhysicsWorld(
        gravity=(0.0, physics_config.gravity, 0.0),
        solver_iterations=physics_config.solver_iterations,
        allow_sleep=physics_config.allow_sleep,
        sleep_speed_limit=physics_config.sleep_speed_limit,
        sleep_time_limit=physics_config.sleep_time_limit,
        rest_damping=physics_config.rest_damping,
        rest_linear_limit=physics_config.rest_linear_limit,
        rest_angular_limit=physics_config.rest_angular_limit,
    )

    pairs = (
        (GROUND, DICE, physics_config.ground_dice),
        (DICE, WALL, physics_config.dice_wall),
        (DICE, DICE, physics_config.dice_dice),
    )
    for first, second, props in pairs:
        world.add_contact_material(ContactMaterial(
            first, second, friction=props.friction, restitution=props.restitution,
        ))

    # Plane normals are local +Z, so each rotation turns +Z to face into the arena
    world.add_static_plane(Pose((0.0, 0.0, 0.0), vecmath.from_euler(-math.pi / 2, 0, 0)), GROUND)

    radius = table_config.field_radius
    height = table_config.wall_height
    walls = (
        ((0.0, height, -radius), (0, 0, 0)),             # back
        ((0.0, height, radius), (0, math.pi, 0)),        # front
        ((-radius, height, 0.0), (0, math.pi / 2, 0)),   # left
        ((radius, height, 0.0), (0, -math.pi / 2, 0)),   # right
    )
    for position, euler in walls:
        world.add_static_plane(Pose(position, vecmath.from_euler(*euler)), WALL)

    half = table_config.dice_size / 2
    dice = []
    for i in range(table_config.num_dice):
        body = world.add_box(
            (half, half, half),
            physics_config.dice_mass,
            Pose(_rest_position(i, table_config.num_dice, table_config.dice_size)),
            DICE,
            linear_damping=physics_config.linear_damping,
            angular_damping=physics_config.angular_damping,
        )
        dice.append(body)

    logger.info(
        f"Physics world initialized: {len(dice)} dice, arena half-width {radius}, "
        f"{len(world.planes)} static planes"
    )
    return Table(world=world, dice=dice, field_radius=radius, dice_size=table_config.dice_size)
