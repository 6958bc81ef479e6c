"""Rigid body simulation used by the dice table."""

from .world import ContactMaterial, Material, PhysicsWorld, Pose, RigidBody, StaticPlane
from . import vecmath

__all__ = [
    "ContactMaterial", "Material", "PhysicsWorld", "Pose", "RigidBody", "StaticPlane",
    "vecmath",
]
