"""Pure domain layer: amount helpers, enumerations, clocks and DTOs."""
