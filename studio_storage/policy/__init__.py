from .acl import (  # noqa: F401
    ACL_POLICY_METADATA_KEY,
    ObjectAccessGroup,
    ObjectAclPolicy,
    ObjectAclRule,
    ObjectPermission,
    can_access,
    register_access_group,
)
