"""
Tender Module

Visit report → tender assignment → competing partner offerings → one
approved winner → delivery eligibility → delivery note.
"""

from petagri_procurement.tender.approvals import ApprovalResolver
from petagri_procurement.tender.assignments import AssignmentStore
from petagri_procurement.tender.commands import (
    ApproveOffering,
    CreateAssignment,
    IssueDeliveryNote,
    OfferedItem,
    ReplaceLineItems,
    RequestedItem,
    SubmitOffering,
)
from petagri_procurement.tender.delivery import DeliveryNoteLog
from petagri_procurement.tender.eligibility import EligibilityProjector
from petagri_procurement.tender.events import (
    DeliveryNoteIssued,
    LineItemsReplaced,
    OfferingApproved,
    OfferingSubmitted,
    TenderAssignmentClosed,
    TenderAssignmentCreated,
)
from petagri_procurement.tender.handlers import TenderCommandHandlers
from petagri_procurement.tender.models import (
    Approval,
    AssignmentStatus,
    DeliveryNote,
    DeliveryStatus,
    EligibilityReport,
    OfferedLineItem,
    Offering,
    OfferingOutcome,
    OfferingSummary,
    RequestedLineItem,
    TenderAssignment,
)
from petagri_procurement.tender.offerings import OfferingRegistry

__all__ = [
    # Components
    "AssignmentStore",
    "OfferingRegistry",
    "ApprovalResolver",
    "EligibilityProjector",
    "DeliveryNoteLog",
    "TenderCommandHandlers",
    # Commands
    "CreateAssignment",
    "ReplaceLineItems",
    "SubmitOffering",
    "ApproveOffering",
    "IssueDeliveryNote",
    "RequestedItem",
    "OfferedItem",
    # Events
    "TenderAssignmentCreated",
    "LineItemsReplaced",
    "TenderAssignmentClosed",
    "OfferingSubmitted",
    "OfferingApproved",
    "DeliveryNoteIssued",
    # Models
    "AssignmentStatus",
    "DeliveryStatus",
    "TenderAssignment",
    "RequestedLineItem",
    "Offering",
    "OfferingOutcome",
    "OfferedLineItem",
    "Approval",
    "OfferingSummary",
    "EligibilityReport",
    "DeliveryNote",
]
