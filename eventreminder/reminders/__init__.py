"""Reminder dispatch: scanner, dispatch cycle, timer, transport adapters and
the connection supervisor that keeps them running."""
