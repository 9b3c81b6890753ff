class WorkshopError(RuntimeError):
    pass


class UnsupportedContentType(WorkshopError):
    def __init__(self, content_type: object, game: str = "") -> None:
        name = getattr(content_type, "value", content_type)
        self.content_type = content_type
        self.game = game
        super().__init__(f"Downloading of {name} not yet supported.")


class CollectionError(WorkshopError):
    pass


class ItemFetchError(WorkshopError):
    pass


class PublishError(WorkshopError):
    pass
