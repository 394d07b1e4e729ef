from toolroom.models.base import MongoModel
from toolroom.models.actor import Actor
from toolroom.models.requisition import Requisition, RequisitionForm, RequisitionStatus, RequisitionType, LineItem, LineItemInput, ApprovalEntry, ApprovalLevel, RejectionEntry, CreatedBy
from toolroom.models.purchase_order import PurchaseOrder, POForm, POLineItem, POStatus, ShippingType
from toolroom.models.catalog import Tool
