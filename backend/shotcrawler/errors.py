"""Failure types raised by the crawler core."""


class CrawlerError(Exception):
    """Base class for every error the crawler reports."""


class InvalidSeedUrl(CrawlerError):
    """The seed is not an absolute HTTP(S) URL. Ends the run before it starts."""


class NavigationError(CrawlerError):
    """Loading a page failed or timed out. Affects that URL only."""


class CaptureError(CrawlerError):
    """Link extraction or the screenshot failed. Affects that URL only."""


class ObserverDeliveryError(CrawlerError):
    """An observer could not accept an event and gets unsubscribed."""


class EngineUninitialized(CrawlerError):
    """A capture ran with no browser, i.e. after teardown."""
