"""
Lifecycle targets and naming conventions.

The lifecycle targets are pre-registered in every TargetRegistry, so
integrations refer to them as "$START", "$INIT_SERVICE", and so on.
"""

# Action name prefixes, shown in the boot trace
BOOT = "♦"
SERVICE = "→"
FEATURE = "▶"

START = "start"
SETTINGS = "settings"
INIT_SERVICES = "init::services"
INIT_SERVICE = "init::service"
INIT_FEATURES = "init::features"
INIT_FEATURE = "init::feature"
START_SERVICES = "start::services"
START_SERVICE = "start::service"
START_FEATURES = "start::features"
START_FEATURE = "start::feature"
FINISH = "finish"

LIFECYCLE_TARGETS: dict[str, str] = {
    "START": START,
    "SETTINGS": SETTINGS,
    "INIT_SERVICES": INIT_SERVICES,
    "INIT_SERVICE": INIT_SERVICE,
    "INIT_FEATURES": INIT_FEATURES,
    "INIT_FEATURE": INIT_FEATURE,
    "START_SERVICES": START_SERVICES,
    "START_SERVICE": START_SERVICE,
    "START_FEATURES": START_FEATURES,
    "START_FEATURE": START_FEATURE,
    "FINISH": FINISH,
}

# Target reference markers
REFERENCE_MARKER = "$"
OPTIONAL_MARKER = "?"
