#!/usr/bin/env python3
"""
Object access-control policies.

A policy is attached to an object as JSON in its user metadata (ACL_POLICY_METADATA_KEY)
and read back on every access check:

    {"owner": "user-1", "visibility": "private",
     "aclRules": [{"group": {"type": "USER", "id": "user-2"}, "permission": "read"}]}

Permissions are ordered READ < WRITE: a WRITE grant also satisfies a READ request.
The owner always holds both.
"""
from __future__ import annotations
import logging
from enum import Enum
from typing import Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from studio_storage.error_handling import InvalidAclPolicyError, UnknownAccessGroupError

logger = logging.getLogger("studio_storage.acl")

# S3 user metadata keys travel as x-amz-meta-* headers, so no colons.
ACL_POLICY_METADATA_KEY = "acl-policy"


class ObjectPermission(str, Enum):
    READ = "read"
    WRITE = "write"


class ObjectAccessGroup(BaseModel):
    # e.g. USER, USER_LIST, EMAIL_DOMAIN; resolved through the group registry
    type: str
    id: str


class ObjectAclRule(BaseModel):
    group: ObjectAccessGroup
    permission: ObjectPermission


class ObjectAclPolicy(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    owner: str
    visibility: Literal["public", "private"]
    acl_rules: List[ObjectAclRule] = Field(default_factory=list, alias="aclRules")

    def to_metadata_value(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_metadata_value(cls, raw: str) -> "ObjectAclPolicy":
        return cls.model_validate_json(raw)


class BaseObjectAccessGroup:
    """A group type knows how to answer membership for one group id."""

    type: str = ""

    def __init__(self, group_id: str):
        self.id = group_id

    def has_member(self, user_id: str) -> bool:
        raise NotImplementedError


class UserAccessGroup(BaseObjectAccessGroup):
    """Single-user grant: the group id is the user id."""

    type = "USER"

    def has_member(self, user_id: str) -> bool:
        return user_id == self.id


AccessGroupFactory = Callable[[str], BaseObjectAccessGroup]

_GROUP_REGISTRY: Dict[str, AccessGroupFactory] = {
    UserAccessGroup.type: UserAccessGroup,
}


def register_access_group(group_type: str, factory: AccessGroupFactory) -> None:
    _GROUP_REGISTRY[group_type] = factory


def unregister_access_group(group_type: str) -> None:
    _GROUP_REGISTRY.pop(group_type, None)


def create_object_access_group(group: ObjectAccessGroup) -> BaseObjectAccessGroup:
    factory = _GROUP_REGISTRY.get(group.type)
    if factory is None:
        raise UnknownAccessGroupError(f"Unknown access group type: {group.type}")
    return factory(group.id)


def is_permission_allowed(requested: ObjectPermission, granted: ObjectPermission) -> bool:
    if requested == ObjectPermission.READ:
        return granted in (ObjectPermission.READ, ObjectPermission.WRITE)
    return granted == ObjectPermission.WRITE


def can_access(
    user_id: Optional[str],
    policy: Optional[ObjectAclPolicy],
    requested: ObjectPermission = ObjectPermission.READ,
    default_allow: bool = True,
) -> bool:
    """
    Decide whether user_id may perform `requested` on an object carrying `policy`.

    Objects without a policy get `default_allow` (fail-open unless configured otherwise).
    Unknown group types raise UnknownAccessGroupError rather than granting access.
    """
    if policy is None:
        return default_allow

    if policy.visibility == "public" and requested == ObjectPermission.READ:
        return True

    if not user_id:
        return False

    if policy.owner == user_id:
        return True

    for rule in policy.acl_rules:
        group = create_object_access_group(rule.group)
        if group.has_member(user_id) and is_permission_allowed(requested, rule.permission):
            return True

    logger.debug("access denied user=%s permission=%s owner=%s", user_id, requested.value, policy.owner)
    return False


def get_object_acl_policy(obj) -> Optional[ObjectAclPolicy]:
    """
    Read the policy stored on obj, or None when it carries none.

    Malformed policy JSON raises InvalidAclPolicyError.
    """
    meta = obj.get_metadata()
    raw = meta.metadata.get(ACL_POLICY_METADATA_KEY)
    if not raw:
        return None
    try:
        return ObjectAclPolicy.from_metadata_value(raw)
    except ValidationError as e:
        raise InvalidAclPolicyError(f"Malformed ACL policy on {obj.key}: {e.error_count()} error(s)") from e


def set_object_acl_policy(obj, policy: ObjectAclPolicy) -> None:
    """Store policy on obj, keeping its other user metadata."""
    meta = obj.get_metadata()
    metadata = dict(meta.metadata)
    metadata[ACL_POLICY_METADATA_KEY] = policy.to_metadata_value()
    obj.set_metadata(metadata, content_type=meta.content_type)
