"""FleetDesk vehicle rental backend."""
