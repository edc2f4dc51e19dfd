"""Pure domain layer: records, validation, clock and saga engine. No I/O."""
