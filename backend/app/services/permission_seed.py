"""
Permission catalog seed data - built-in permissions, their conditions and the global system roles
"""

# Built-in catalog: (resource, action, scope, name, category)
SYSTEM_PERMISSIONS = [
    # HR
    ("user", "create", "department", "Create Department Users", "HR"),
    ("user", "read", "own", "View Own Profile", "HR"),
    ("user", "read", "department", "View Department Users", "HR"),
    ("user", "update", "own", "Update Own Profile", "HR"),
    ("user", "update", "department", "Update Department Users", "HR"),
    ("payslip", "read", "own", "View Own Payslips", "HR"),
    ("payslip", "read", "department", "View Department Payslips", "HR"),
    ("vacation", "create", "own", "Create Vacation Request", "HR"),
    ("vacation", "read", "own", "View Own Vacations", "HR"),
    ("vacation", "approve", "department", "Approve Department Vacations", "HR"),
    # Training / documents
    ("training", "read", "department", "View Department Training", "Training"),
    ("training", "assign", "department", "Assign Department Training", "Training"),
    ("document", "read", "department", "View Department Documents", "Documents"),
    # Hotel operations
    ("units", "read", "property", "View Units", "Hotel Operations"),
    ("guests", "read", "property", "View Guests", "Hotel Operations"),
    ("reservations", "read", "property", "View Reservations", "Hotel Operations"),
    ("reservations", "update", "property", "Manage Reservations", "Hotel Operations"),
    # Administration
    ("role", "read", "organization", "View Roles", "Administration"),
    ("role", "create", "organization", "Create Roles", "Administration"),
    ("role", "update", "organization", "Update Roles", "Administration"),
    ("role", "delete", "organization", "Delete Roles", "Administration"),
    ("role", "assign", "organization", "Assign Roles", "Administration"),
    ("permission", "read", "organization", "View Permissions", "Administration"),
    ("permission", "grant", "organization", "Grant Permissions", "Administration"),
    ("permission", "revoke", "organization", "Revoke Permissions", "Administration"),
    ("permission", "manage", "all", "Manage Permission Catalog", "Administration"),
    ("system", "read", "all", "View System Status", "Administration"),
    ("system", "manage", "all", "Manage System", "Administration"),
    # Wildcard grants backing the system roles
    ("*", "*", "all", "Full Platform Access", "System"),
    ("*", "*", "organization", "Full Organization Access", "System"),
    ("*", "*", "property", "Full Property Access", "System"),
    ("*", "*", "department", "Full Department Access", "System"),
]

# Conditions attached to catalog permissions: (permission code, type, operator, value, description)
SYSTEM_CONDITIONS = [
    ("payslip.read.department", "time", "between",
     {"startTime": "09:00", "endTime": "17:00"}, "Only during business hours"),
]

# Global system roles: name -> (description, priority, permission codes)
SYSTEM_ROLES = {
    "Platform Administrator": ("Full platform access", 1000, ["*.*.all"]),
    "Organization Owner": ("Organization-wide access", 900, ["*.*.organization"]),
    "Property Manager": ("Property-wide access", 800, ["*.*.property"]),
    "Department Admin": ("Department-specific access", 700, ["*.*.department"]),
    "Staff Member": ("Basic staff access", 100, [
        "user.read.own",
        "user.update.own",
        "payslip.read.own",
        "vacation.create.own",
        "vacation.read.own",
        "training.read.department",
        "document.read.department",
    ]),
}
