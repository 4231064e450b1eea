"""cambio - transaction and balance ledger for a currency-exchange house."""


# Import main lazily so importing the domain layer does not load click
def __getattr__(name):
    if name == "main":
        from cambio.cli.main import main
        return main
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
