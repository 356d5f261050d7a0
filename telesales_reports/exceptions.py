"""Exceptions raised by the report toolkit."""


class TelesalesReportError(Exception):
    """Base exception for report generation"""

    pass


class FetchError(TelesalesReportError):
    """The data store could not be queried or returned an error"""

    pass


class EmptyExportError(TelesalesReportError):
    """An export was requested for a report with no rows"""

    pass


class PresetImportError(TelesalesReportError):
    """A preset file or share payload is malformed"""

    pass


class CategoryError(TelesalesReportError):
    """A preset category cannot be changed as requested"""

    pass


class InvalidFilterError(TelesalesReportError):
    """A report filter, report name or sort field is not valid"""

    pass
