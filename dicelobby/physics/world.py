"""
Rigid body world for the dice table.

Static infinite planes and dynamic boxes, stepped at a fixed rate with an
accumulator for wall-clock time. Contacts are vertex-based (box corners
against planes and against other boxes) and resolved with a sequential
impulse solver: one normal row and two friction rows per contact.

Box corners within ``CONTACT_MARGIN`` of a plane get a speculative contact
that only limits how fast the corner may close the gap, so slow contacts
land without penetrating and position correction never has to lift them.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from . import vecmath

logger = logging.getLogger(__name__)

# Solver constants
RESTITUTION_THRESHOLD: float = 1.0  # approach speed below which contacts do not bounce
PENETRATION_SLOP: float = 0.001
POSITION_CORRECTION: float = 0.8
CONTACT_MARGIN: float = 0.02

_CORNERS = np.array([
    [sx, sy, sz]
    for sx in (-1.0, 1.0)
    for sy in (-1.0, 1.0)
    for sz in (-1.0, 1.0)
])


@dataclass(frozen=True)
class Material:
    """Surface tag used to look up contact properties."""
    name: str


@dataclass
class ContactMaterial:
    """Friction and restitution between two materials."""
    a: Material
    b: Material
    friction: float = 0.3
    restitution: float = 0.0

    @property
    def key(self) -> frozenset:
        return frozenset((self.a.name, self.b.name))


@dataclass
class Pose:
    """Position plus orientation quaternion (x, y, z, w)."""
    position: Sequence[float] = (0.0, 0.0, 0.0)
    quaternion: Sequence[float] = (0.0, 0.0, 0.0, 1.0)


@dataclass(eq=False)
class StaticPlane:
    """Infinite half-space. Everything behind the plane is solid."""
    index: int
    point: np.ndarray
    normal: np.ndarray
    material: Material

    def distance(self, point: np.ndarray) -> float:
        return float(np.dot(point - self.point, self.normal))


@dataclass(eq=False)
class RigidBody:
    """Dynamic box."""
    index: int
    half_extents: np.ndarray
    mass: float
    material: Material
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    quaternion: np.ndarray = field(default_factory=vecmath.identity_quaternion)
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    angular_velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    linear_damping: float = 0.01
    angular_damping: float = 0.01
    sleeping: bool = False
    sleepy_time: float = 0.0

    def __post_init__(self):
        hx, hy, hz = self.half_extents
        self.inv_mass = 1.0 / self.mass
        self.inv_inertia_local = np.array([
            3.0 / (self.mass * (hy * hy + hz * hz)),
            3.0 / (self.mass * (hx * hx + hz * hz)),
            3.0 / (self.mass * (hx * hx + hy * hy)),
        ])
        self.bounding_radius = float(np.linalg.norm(self.half_extents))

    def set_pose(self, position: Sequence[float], quaternion: Sequence[float]) -> None:
        self.position = np.array(position, dtype=float)
        self.quaternion = vecmath.normalize(np.array(quaternion, dtype=float))
        self.wake_up()

    def set_velocity(self, linear: Sequence[float], angular: Sequence[float]) -> None:
        self.velocity = np.array(linear, dtype=float)
        self.angular_velocity = np.array(angular, dtype=float)
        self.wake_up()

    def wake_up(self) -> None:
        self.sleeping = False
        self.sleepy_time = 0.0

    def sleep(self) -> None:
        self.sleeping = True
        self.velocity = np.zeros(3)
        self.angular_velocity = np.zeros(3)

    def speed_squared(self) -> float:
        return float(np.dot(self.velocity, self.velocity) + np.dot(self.angular_velocity, self.angular_velocity))

    def rotation(self) -> np.ndarray:
        return vecmath.rotation_matrix(self.quaternion)

    def inv_inertia_world(self) -> np.ndarray:
        r = self.rotation()
        return r @ np.diag(self.inv_inertia_local) @ r.T

    def vertices(self) -> np.ndarray:
        """World-space corners, shape (8, 3)."""
        return self.position + (_CORNERS * self.half_extents) @ self.rotation().T


@dataclass(eq=False)
class Contact:
    """One touching or nearly touching point.

    ``normal`` points from ``b`` towards ``a``. A negative ``depth`` is the
    gap left before the surfaces meet.
    """
    a: RigidBody
    b: Optional[RigidBody]
    point: np.ndarray
    normal: np.ndarray
    depth: float
    friction: float
    restitution: float
    key: tuple


class _Row:
    """Velocity constraint along one direction, in flat 6-float velocity space."""

    __slots__ = ("a", "b", "ja", "jb", "wa", "wb", "inv_k", "bias", "impulse", "normal_row", "friction")

    def __init__(self, a, b, ja, jb, wa, wb, bias=0.0, normal_row=None, friction=0.0):
        self.a = a
        self.b = b
        self.ja = ja
        self.jb = jb
        self.wa = wa
        self.wb = wb
        k = sum(x * y for x, y in zip(ja, wa)) + sum(x * y for x, y in zip(jb, wb))
        self.inv_k = 1.0 / k if k > 1e-12 else 0.0
        self.bias = bias
        self.impulse = 0.0
        self.normal_row = normal_row
        self.friction = friction


class PhysicsWorld:
    """Holds bodies and static geometry and advances them in time."""

    def __init__(
        self,
        gravity: Sequence[float] = (0.0, -9.82, 0.0),
        solver_iterations: int = 10,
        allow_sleep: bool = False,
        sleep_speed_limit: float = 0.1,
        sleep_time_limit: float = 1.0,
        rest_damping: float = 0.0,
        rest_linear_limit: float = 0.5,
        rest_angular_limit: float = 4.0,
    ):
        self.gravity = np.array(gravity, dtype=float)
        self.solver_iterations = solver_iterations
        self.allow_sleep = allow_sleep
        self.sleep_speed_limit = sleep_speed_limit
        self.sleep_time_limit = sleep_time_limit
        # Extra damping for slow bodies that touch something
        self.rest_damping = rest_damping
        self.rest_linear_limit = rest_linear_limit
        self.rest_angular_limit = rest_angular_limit
        self.bodies: list[RigidBody] = []
        self.planes: list[StaticPlane] = []
        self.contact_materials: dict[frozenset, ContactMaterial] = {}
        self.default_contact = ContactMaterial(Material("default"), Material("default"))
        self.time: float = 0.0
        self.step_count: int = 0
        self._accumulator: float = 0.0

    # ---- construction ----

    def add_contact_material(self, contact_material: ContactMaterial) -> None:
        self.contact_materials[contact_material.key] = contact_material

    def add_static_plane(self, pose: Pose, material: Material) -> StaticPlane:
        """Add an infinite plane whose normal is the pose's local +Z axis."""
        q = vecmath.normalize(np.array(pose.quaternion, dtype=float))
        normal = vecmath.rotate(q, np.array([0.0, 0.0, 1.0]))
        plane = StaticPlane(
            index=len(self.planes),
            point=np.array(pose.position, dtype=float),
            normal=normal / np.linalg.norm(normal),
            material=material,
        )
        self.planes.append(plane)
        return plane

    def add_box(
        self,
        half_extents: Sequence[float],
        mass: float,
        pose: Pose,
        material: Material,
        linear_damping: float = 0.01,
        angular_damping: float = 0.01,
    ) -> RigidBody:
        """Add a dynamic box.

        Raises:
            ValueError: If mass or any half extent is not positive
        """
        if mass <= 0:
            raise ValueError(f"Box mass must be positive, got {mass}")
        extents = np.array(half_extents, dtype=float)
        if extents.shape != (3,) or np.any(extents <= 0):
            raise ValueError(f"Box half extents must be three positive numbers, got {half_extents}")

        body = RigidBody(
            index=len(self.bodies),
            half_extents=extents,
            mass=float(mass),
            material=material,
            position=np.array(pose.position, dtype=float),
            quaternion=vecmath.normalize(np.array(pose.quaternion, dtype=float)),
            linear_damping=linear_damping,
            angular_damping=angular_damping,
        )
        self.bodies.append(body)
        return body

    def contact_for(self, a: Material, b: Material) -> ContactMaterial:
        return self.contact_materials.get(frozenset((a.name, b.name)), self.default_contact)

    # ---- stepping ----

    def step(self, dt: float, real_dt: Optional[float] = None, max_sub_steps: int = 10) -> int:
        """Advance the world.

        Without ``real_dt`` exactly one internal step of ``dt`` is taken.
        With it, ``real_dt`` is added to an accumulator that is drained in
        fixed ``dt`` steps, at most ``max_sub_steps`` per call and at least
        one, so simulated time always moves forward.

        Returns:
            Number of internal steps taken
        """
        if dt <= 0:
            raise ValueError(f"Time step must be positive, got {dt}")

        if real_dt is None:
            self._internal_step(dt)
            return 1

        self._accumulator += max(real_dt, 0.0)
        substeps = 0
        while self._accumulator >= dt and substeps < max_sub_steps:
            self._internal_step(dt)
            self._accumulator -= dt
            substeps += 1

        if substeps == 0:
            self._internal_step(dt)
            self._accumulator = 0.0
            substeps = 1

        # Drop backlog the sub-step cap could not absorb
        self._accumulator %= dt
        return substeps

    def _internal_step(self, dt: float) -> None:
        awake = [b for b in self.bodies if not b.sleeping]

        for body in awake:
            body.velocity = body.velocity + self.gravity * dt
            body.velocity *= (1.0 - body.linear_damping) ** dt
            body.angular_velocity *= (1.0 - body.angular_damping) ** dt

        contacts = self.find_contacts()
        self._wake_touched(contacts)
        self._solve(contacts, dt)
        if self.rest_damping > 0:
            self._damp_resting(contacts, dt)
        self._correct_positions(contacts)

        for body in self.bodies:
            if body.sleeping:
                continue
            body.position = body.position + body.velocity * dt
            body.quaternion = vecmath.integrate(body.quaternion, body.angular_velocity, dt)

        if self.allow_sleep:
            self._update_sleep(dt)

        self.time += dt
        self.step_count += 1

    # ---- collision detection ----

    def find_contacts(self) -> list[Contact]:
        contacts: list[Contact] = []

        for body in self.bodies:
            if body.sleeping:
                continue
            corners = body.vertices()
            for plane in self.planes:
                props = self.contact_for(body.material, plane.material)
                for point in corners:
                    depth = -plane.distance(point)
                    if depth > -CONTACT_MARGIN:
                        contacts.append(Contact(
                            a=body, b=None, point=point, normal=plane.normal,
                            depth=depth, friction=props.friction,
                            restitution=props.restitution,
                            key=("plane", body.index, plane.index),
                        ))

        for i, first in enumerate(self.bodies):
            for second in self.bodies[i + 1:]:
                if first.sleeping and second.sleeping:
                    continue
                reach = first.bounding_radius + second.bounding_radius
                if np.linalg.norm(first.position - second.position) >= reach:
                    continue
                props = self.contact_for(first.material, second.material)
                contacts.extend(self._box_contacts(first, second, props))

        return contacts

    @staticmethod
    def _box_contacts(a: RigidBody, b: RigidBody, props: ContactMaterial) -> list[Contact]:
        """Separating-axis test between two boxes.

        The axis of least overlap gives the contact normal. Corners of each
        box that lie past the other box's extreme along that axis become
        contact points.
        """
        rot_a, rot_b = a.rotation(), b.rotation()
        offset = a.position - b.position

        axes = [rot_a[:, i] for i in range(3)] + [rot_b[:, i] for i in range(3)]
        for i in range(3):
            for j in range(3):
                cross = np.cross(rot_a[:, i], rot_b[:, j])
                length = np.linalg.norm(cross)
                if length > 1e-6:
                    axes.append(cross / length)

        best_depth = np.inf
        normal = None
        for axis in axes:
            reach_a = float(np.sum(a.half_extents * np.abs(axis @ rot_a)))
            reach_b = float(np.sum(b.half_extents * np.abs(axis @ rot_b)))
            distance = float(np.dot(offset, axis))
            overlap = reach_a + reach_b - abs(distance)
            if overlap <= 0:
                return []
            if overlap < best_depth:
                best_depth = overlap
                normal = axis if distance >= 0 else -axis

        corners_a = a.vertices()
        corners_b = b.vertices()
        along_a = corners_a @ normal
        along_b = corners_b @ normal
        face_b = float(along_b.max())
        face_a = float(along_a.min())

        found = []
        for point, level in zip(corners_a, along_a):
            if level < face_b and np.linalg.norm(point - b.position) <= b.bounding_radius:
                found.append((point, min(face_b - level, best_depth)))
        for point, level in zip(corners_b, along_b):
            if level > face_a and np.linalg.norm(point - a.position) <= a.bounding_radius:
                found.append((point, min(level - face_a, best_depth)))

        return [
            Contact(
                a=a, b=b, point=point, normal=normal, depth=float(depth),
                friction=props.friction, restitution=props.restitution,
                key=("box", a.index, b.index),
            )
            for point, depth in found
        ]

    # ---- solver ----

    def _wake_touched(self, contacts: list[Contact]) -> None:
        limit_sq = self.sleep_speed_limit ** 2
        for contact in contacts:
            a, b = contact.a, contact.b
            if b is None or a.sleeping == b.sleeping:
                continue
            mover = b if a.sleeping else a
            if mover.speed_squared() > limit_sq:
                a.wake_up()
                b.wake_up()

    def _solve(self, contacts: list[Contact], dt: float) -> None:
        if not contacts:
            return

        mobile = [b for b in self.bodies if not b.sleeping]
        inv_inertia = {b.index: b.inv_inertia_world() for b in mobile}
        # Flat [vx, vy, vz, wx, wy, wz] buffers keep the inner loop in plain floats
        buffers = {
            b.index: b.velocity.tolist() + b.angular_velocity.tolist()
            for b in mobile
        }

        rows: list[_Row] = []
        for contact in contacts:
            a = contact.a if contact.a.index in buffers else None
            b = contact.b if contact.b is not None and contact.b.index in buffers else None
            if a is None and b is None:
                continue
            n = contact.normal
            normal_row = self._make_row(contact, a, b, n, inv_inertia)
            approach = self._relative_speed(normal_row, buffers)
            if approach < -RESTITUTION_THRESHOLD and -approach * dt >= -contact.depth:
                normal_row.bias = -contact.restitution * approach
            elif contact.depth < 0:
                # Speculative: may close the gap this step but not overshoot it
                normal_row.bias = contact.depth / dt
            rows.append(normal_row)
            if contact.friction > 0:
                for t in vecmath.tangent_basis(n):
                    rows.append(self._make_row(
                        contact, a, b, t, inv_inertia,
                        normal_row=normal_row, friction=contact.friction,
                    ))

        for _ in range(self.solver_iterations):
            for row in rows:
                rel = self._relative_speed(row, buffers)
                delta = (row.bias - rel) * row.inv_k
                old = row.impulse
                if row.normal_row is None:
                    row.impulse = max(old + delta, 0.0)
                else:
                    bound = row.friction * row.normal_row.impulse
                    row.impulse = min(max(old + delta, -bound), bound)
                delta = row.impulse - old
                if delta == 0.0:
                    continue
                if row.a is not None:
                    va = buffers[row.a]
                    for k in range(6):
                        va[k] += row.wa[k] * delta
                if row.b is not None:
                    vb = buffers[row.b]
                    for k in range(6):
                        vb[k] += row.wb[k] * delta

        for body in mobile:
            buf = buffers[body.index]
            body.velocity = np.array(buf[:3])
            body.angular_velocity = np.array(buf[3:])

    @staticmethod
    def _make_row(contact, a, b, direction, inv_inertia, normal_row=None, friction=0.0) -> _Row:
        zeros = [0.0] * 6
        ja = jb = wa = wb = zeros
        a_index = b_index = None
        if a is not None:
            arm = np.cross(contact.point - a.position, direction)
            ja = direction.tolist() + arm.tolist()
            wa = (direction * a.inv_mass).tolist() + (inv_inertia[a.index] @ arm).tolist()
            a_index = a.index
        if b is not None:
            arm = np.cross(contact.point - b.position, direction)
            jb = (-direction).tolist() + (-arm).tolist()
            wb = (-direction * b.inv_mass).tolist() + (-(inv_inertia[b.index] @ arm)).tolist()
            b_index = b.index
        return _Row(a_index, b_index, ja, jb, wa, wb, normal_row=normal_row, friction=friction)

    @staticmethod
    def _relative_speed(row: _Row, buffers: dict) -> float:
        speed = 0.0
        if row.a is not None:
            speed += sum(j * v for j, v in zip(row.ja, buffers[row.a]))
        if row.b is not None:
            speed += sum(j * v for j, v in zip(row.jb, buffers[row.b]))
        return speed

    def _damp_resting(self, contacts: list[Contact], dt: float) -> None:
        """Extra exponential decay for slow bodies that touch a plane or another body."""
        touching = set()
        for contact in contacts:
            touching.add(contact.a.index)
            if contact.b is not None:
                touching.add(contact.b.index)

        factor = math.exp(-self.rest_damping * dt)
        for body in self.bodies:
            if body.sleeping or body.index not in touching:
                continue
            if (np.linalg.norm(body.velocity) < self.rest_linear_limit
                    and np.linalg.norm(body.angular_velocity) < self.rest_angular_limit):
                body.velocity = body.velocity * factor
                body.angular_velocity = body.angular_velocity * factor

    def _correct_positions(self, contacts: list[Contact]) -> None:
        deepest: dict[tuple, Contact] = {}
        for contact in contacts:
            current = deepest.get(contact.key)
            if current is None or contact.depth > current.depth:
                deepest[contact.key] = contact

        for contact in deepest.values():
            inv_a = 0.0 if contact.a.sleeping else contact.a.inv_mass
            inv_b = 0.0
            if contact.b is not None and not contact.b.sleeping:
                inv_b = contact.b.inv_mass
            total = inv_a + inv_b
            push = max(contact.depth - PENETRATION_SLOP, 0.0) * POSITION_CORRECTION
            if total == 0.0 or push == 0.0:
                continue
            offset = contact.normal * (push / total)
            if inv_a:
                contact.a.position = contact.a.position + offset * inv_a
            if inv_b:
                contact.b.position = contact.b.position - offset * inv_b

    def _update_sleep(self, dt: float) -> None:
        limit_sq = self.sleep_speed_limit ** 2
        for body in self.bodies:
            if body.sleeping:
                continue
            if body.speed_squared() < limit_sq:
                body.sleepy_time += dt
                if body.sleepy_time >= self.sleep_time_limit:
                    body.sleep()
                    logger.debug(f"Body {body.index} fell asleep at t={self.time:.2f}s")
            else:
                body.sleepy_time = 0.0
