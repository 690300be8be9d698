"""
Permissions and Roles Configuration
This config defines the authorization vocabulary: scopes, permission names,
the ownership allow-list and the system permission/role matrix.
Used by the permission checker, the guards and the seed script.
"""


class Scopes:
    SYSTEM = "system"
    WORKSPACE = "workspace"
    PROJECT = "project"
    SECTION = "section"
    PAGE = "page"
    USER = "user"


# Scopes a role or permission row can be stored with
ROLE_SCOPES = [Scopes.WORKSPACE, Scopes.PROJECT]


class Permissions:
    """Permission names, `action:resourceType`."""

    class USER:
        CREATE = "create:user"
        READ = "read:user"
        UPDATE = "update:user"
        DELETE = "delete:user"
        MANAGE = "manage:user"

    class WORKSPACE:
        CREATE = "create:workspace"
        READ = "read:workspace"
        UPDATE = "update:workspace"
        DELETE = "delete:workspace"
        MANAGE = "manage:workspace"
        INVITE = "invite:user"
        MANAGE_MEMBERS = "manage:members"

    class PROJECT:
        CREATE = "create:project"
        READ = "read:project"
        UPDATE = "update:project"
        DELETE = "delete:project"
        MANAGE = "manage:project"
        EDIT = "edit:project"

    class SECTION:
        CREATE = "create:section"
        READ = "read:section"
        UPDATE = "update:section"
        DELETE = "delete:section"
        EDIT = "edit:section"

    class PAGE:
        CREATE = "create:page"
        READ = "read:page"
        UPDATE = "update:page"
        DELETE = "delete:page"
        EDIT = "edit:page"
        SHARE = "share:page"

    class ANNOTATION:
        CREATE = "create:annotation"
        READ = "read:annotation"
        UPDATE = "edit:annotation"
        DELETE = "delete:annotation"
        RESOLVE = "resolve:annotation"
        MODERATE = "moderate:annotation"
        VIEW_ALL = "view:all_annotations"

    class ROLE:
        CREATE = "create:role"
        READ = "read:role"
        UPDATE = "update:role"
        DELETE = "delete:role"
        ASSIGN = "assign:role"

    class PERMISSION:
        CREATE = "create:permission"
        READ = "read:permission"
        UPDATE = "update:permission"
        DELETE = "delete:permission"
        ASSIGN = "assign:permission"

    class NOTIFICATION:
        CREATE = "create:notification"
        READ = "read:notification"
        UPDATE = "update:notification"
        DELETE = "delete:notification"
        BROADCAST = "broadcast:notification"

    class INVITATION:
        CREATE = "create:invitation"
        READ = "read:invitation"
        UPDATE = "update:invitation"
        DELETE = "delete:invitation"
        SEND = "send:invitation"


# Ownership alone satisfies only these permission names, per scope
OWNERSHIP_PERMISSIONS = {
    Scopes.WORKSPACE: [
        Permissions.WORKSPACE.MANAGE,
        Permissions.WORKSPACE.DELETE,
        Permissions.WORKSPACE.INVITE,
        Permissions.WORKSPACE.MANAGE_MEMBERS,
    ],
    Scopes.PROJECT: [
        Permissions.PROJECT.MANAGE,
        Permissions.PROJECT.DELETE,
        Permissions.PROJECT.EDIT,
        Permissions.SECTION.CREATE,
    ],
    Scopes.SECTION: [
        Permissions.SECTION.EDIT,
        Permissions.SECTION.DELETE,
        Permissions.PAGE.CREATE,
    ],
    Scopes.PAGE: [
        Permissions.PAGE.EDIT,
        Permissions.PAGE.DELETE,
        Permissions.PAGE.SHARE,
    ],
}

# resource type -> (table, owner column)
OWNED_RESOURCES = {
    Scopes.WORKSPACE: ("workspaces", "owner_id"),
    Scopes.PROJECT: ("projects", "owner_id"),
    Scopes.SECTION: ("sections", "owner_id"),
    Scopes.PAGE: ("pages", "owner_id"),
}

# Only super admins may broadcast these, whatever else they were granted
RESTRICTED_NOTIFICATION_TYPES = ["system_announcement", "maintenance_alert", "security_notice"]

ACCESSIBLE_PERMISSION_SCOPES = [Scopes.WORKSPACE, Scopes.PROJECT, Scopes.PAGE, Scopes.USER]

# Workspace role names that open the project editor
EDITOR_ROLE_NAMES = ["owner", "editor"]


# Permissions a role can carry, by the scope they are stored with
SCOPED_PERMISSIONS = {
    Scopes.WORKSPACE: {
        Permissions.WORKSPACE.READ: "View workspace details",
        Permissions.WORKSPACE.UPDATE: "Update workspace details",
        Permissions.WORKSPACE.MANAGE: "Manage workspace settings",
        Permissions.WORKSPACE.DELETE: "Delete the workspace",
        Permissions.WORKSPACE.INVITE: "Invite users to the workspace",
        Permissions.WORKSPACE.MANAGE_MEMBERS: "Add, remove and re-role workspace members",
        Permissions.PROJECT.CREATE: "Create projects in the workspace",
        Permissions.ROLE.ASSIGN: "Assign roles to workspace members",
        Permissions.NOTIFICATION.CREATE: "Send notifications to workspace members",
        Permissions.USER.MANAGE: "Manage workspace member accounts",
    },
    Scopes.PROJECT: {
        Permissions.PROJECT.READ: "View project details",
        Permissions.PROJECT.EDIT: "Edit project details",
        Permissions.PROJECT.MANAGE: "Manage project settings",
        Permissions.PROJECT.DELETE: "Delete the project",
        Permissions.WORKSPACE.INVITE: "Invite users to the project",
        Permissions.WORKSPACE.MANAGE_MEMBERS: "Manage project members",
        Permissions.ROLE.ASSIGN: "Assign roles to project members",
        Permissions.PERMISSION.ASSIGN: "Grant permissions directly to project members",
        Permissions.SECTION.CREATE: "Create sections",
        Permissions.SECTION.EDIT: "Edit sections",
        Permissions.SECTION.DELETE: "Delete sections",
        Permissions.PAGE.CREATE: "Create pages",
        Permissions.PAGE.EDIT: "Edit page content",
        Permissions.PAGE.DELETE: "Delete pages",
        Permissions.PAGE.SHARE: "Share pages publicly",
        Permissions.ANNOTATION.CREATE: "Annotate pages",
        Permissions.ANNOTATION.UPDATE: "Edit any annotation",
        Permissions.ANNOTATION.DELETE: "Delete any annotation",
        Permissions.ANNOTATION.RESOLVE: "Resolve any annotation",
        Permissions.ANNOTATION.MODERATE: "Moderate annotations",
        Permissions.ANNOTATION.VIEW_ALL: "See resolved annotations of other users",
    },
}

# System role definitions per scope; "*" means every permission of the scope
ROLE_TYPES = {
    Scopes.WORKSPACE: {
        "admin": {
            "permissions": ["*"],
            "description": "Administrator with full workspace access",
        },
        "member": {
            "permissions": [Permissions.WORKSPACE.READ, Permissions.PROJECT.CREATE],
            "description": "Workspace member",
        },
    },
    Scopes.PROJECT: {
        "team_lead": {
            "permissions": ["*"],
            "description": "Team leader with project management capabilities",
        },
        "developer": {
            "permissions": [
                Permissions.PROJECT.READ,
                Permissions.PAGE.CREATE,
                Permissions.PAGE.EDIT,
                Permissions.ANNOTATION.CREATE,
                Permissions.ANNOTATION.RESOLVE,
            ],
            "description": "Developer with restricted access to assigned projects",
        },
    },
}


# Generate permission matrix
def get_permission_matrix():
    """
    Returns a dictionary with all system permissions and roles
    Format: {
        "permissions": [
            {"name": "edit:page", "scope": "project", "description": "..."},
            ...
        ],
        "roles": [
            {
                "name": "team_lead",
                "scope": "project",
                "description": "...",
                "permissions": ["create:page", ...]
            },
            ...
        ]
    }
    """
    permissions = []
    roles = []

    for scope, scoped in SCOPED_PERMISSIONS.items():
        for name, description in scoped.items():
            permissions.append({
                "name": name,
                "scope": scope,
                "description": description
            })

    for scope, role_types in ROLE_TYPES.items():
        for role_name, role_config in role_types.items():
            if "*" in role_config["permissions"]:
                role_permissions = list(SCOPED_PERMISSIONS[scope])
            else:
                role_permissions = [
                    name for name in role_config["permissions"]
                    if name in SCOPED_PERMISSIONS[scope]
                ]

            roles.append({
                "name": role_name,
                "scope": scope,
                "description": role_config["description"],
                "permissions": sorted(role_permissions)
            })

    return {
        "permissions": permissions,
        "roles": roles
    }


# Export the matrix for use in seed scripts
PERMISSION_MATRIX = get_permission_matrix()
