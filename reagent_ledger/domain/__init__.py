"""Pure domain layer: clock, status rules, and DTOs. No I/O."""
