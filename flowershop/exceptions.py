class FlowerShopError(Exception):
    """Base class for errors raised by the order/stock rules."""


class UnknownFlower(FlowerShopError):
    def __init__(self, flower_id: int):
        self.flower_id = flower_id
        super().__init__(f"Flower {flower_id} does not exist")


class InsufficientStock(FlowerShopError):
    def __init__(self, flower_id: int, requested: int, available: int):
        self.flower_id = flower_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Not enough stock for flower {flower_id}: "
            f"requested {requested}, available {available}"
        )
