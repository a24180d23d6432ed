"""Services — in-process infrastructure shared by the engine and tooling."""
