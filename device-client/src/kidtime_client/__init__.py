"""KidTime device agent: overlay guard, usage accrual and screen locking."""
