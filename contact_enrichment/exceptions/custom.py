class ParseFailure(Exception):
    def __init__(self, message: str, source: str | None = None):
        self.message = message
        self.source = source
        super().__init__(message)


class PersistenceError(Exception):
    def __init__(self, message: str, opportunity_id: int | None = None):
        self.message = message
        self.opportunity_id = opportunity_id
        super().__init__(message)


class OpportunityNotFoundError(PersistenceError):
    def __init__(self, opportunity_id: int):
        super().__init__(f"Opportunity {opportunity_id} not found", opportunity_id)
