"""Event type constants for host notifications."""

# Emitted by the repeater itself when its bound value changes
VALUE_CHANGE = "ntx-value-change"
CHANGE = "change"

HOST_EVENTS = (VALUE_CHANGE, CHANGE)

# Synthesized on the mirror field so its own data binding notices the update
INPUT = "input"
NF_VALUE_CHANGED = "nf-value-changed"

MIRROR_FIELD_EVENTS = (INPUT, CHANGE, VALUE_CHANGE, NF_VALUE_CHANGED)
