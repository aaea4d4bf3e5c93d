"""Service layer: functions taking the EntityStore first and raising BackOfficeError subclasses."""
