"""Farm Service - CRUD operations for farms and their sheds.

Farms and sheds are master data: they have no population or stock side
effects, so each call is a single plain transaction. Functions follow the
session pattern: pass a session to compose with a caller's transaction.

Deletes are refused while a batch is still housed in the farm or shed.

Example Usage:
    >>> farm = create_farm("La Esperanza", location="Vereda El Hato")
    >>> shed = create_shed(farm["id"], "Galpón 1", capacity=5000)
    >>> [s["name"] for s in list_sheds(farm["id"])]
    ['Galpón 1']
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import Batch, Farm, Shed
from ..utils.constants import MAX_NAME_LENGTH
from ..utils.validators import parse_int, validate_required_string, validate_string_length
from .database import session_scope
from .exceptions import FarmNotFound, ShedNotFound, ValidationError
from .ledger_store import fetch
from .logging_utils import get_service_logger, log_operation
from .session_context import SessionContext, owner_of

logger = get_service_logger(__name__)


def _validate_name(name: Optional[str], field_name: str) -> str:
    return validate_string_length(
        validate_required_string(name, field_name), MAX_NAME_LENGTH, field_name
    )


def create_farm(
    name: str,
    location: Optional[str] = None,
    context: Optional[SessionContext] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Create a new farm.

    Args:
        name: Farm name (required)
        location: Free-form location (optional)
        context: Session context; the user becomes the farm's owner
        session: Optional database session for transactional atomicity

    Returns:
        Dict[str, Any]: Created farm as dictionary

    Raises:
        ValidationError: If name is blank or too long
    """
    name = _validate_name(name, "Farm name")
    location = validate_string_length(location or None, MAX_NAME_LENGTH, "Location")
    if session is not None:
        return _create_farm_impl(name, location, owner_of(context), session)
    with session_scope() as session:
        return _create_farm_impl(name, location, owner_of(context), session)


def _create_farm_impl(
    name: str, location: Optional[str], owner_id: Optional[str], session: Session
) -> Dict[str, Any]:
    """Implementation of create_farm."""
    farm = Farm(name=name, location=location, owner_id=owner_id)
    session.add(farm)
    session.flush()
    log_operation(logger, operation="create_farm", outcome="success", farm_id=farm.id)
    return farm.to_dict()


def get_farm(farm_id: str, session: Optional[Session] = None) -> Dict[str, Any]:
    """Get a farm by ID.

    Raises:
        FarmNotFound: If the farm does not exist
    """
    if session is not None:
        return fetch(session, Farm, farm_id, FarmNotFound).to_dict()
    with session_scope() as session:
        return fetch(session, Farm, farm_id, FarmNotFound).to_dict()


def list_farms(session: Optional[Session] = None) -> List[Dict[str, Any]]:
    """List all farms ordered by name."""
    if session is not None:
        return _list_farms_impl(session)
    with session_scope() as session:
        return _list_farms_impl(session)


def _list_farms_impl(session: Session) -> List[Dict[str, Any]]:
    return [farm.to_dict() for farm in session.query(Farm).order_by(Farm.name).all()]


def update_farm(
    farm_id: str,
    name: Optional[str] = None,
    location: Optional[str] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Rename or relocate a farm. Omitted arguments are left unchanged.

    Raises:
        FarmNotFound: If the farm does not exist
        ValidationError: If the new name is blank or too long
    """
    changes: Dict[str, Any] = {}
    if name is not None:
        changes["name"] = _validate_name(name, "Farm name")
    if location is not None:
        changes["location"] = validate_string_length(location or None, MAX_NAME_LENGTH, "Location")

    if session is not None:
        return _update_farm_impl(farm_id, changes, session)
    with session_scope() as session:
        return _update_farm_impl(farm_id, changes, session)


def _update_farm_impl(farm_id: str, changes: Dict[str, Any], session: Session) -> Dict[str, Any]:
    farm = fetch(session, Farm, farm_id, FarmNotFound)
    farm.update_from_dict(changes)
    session.flush()
    return farm.to_dict()


def delete_farm(farm_id: str, session: Optional[Session] = None) -> None:
    """Delete a farm and its sheds.

    Raises:
        FarmNotFound: If the farm does not exist
        ValidationError: If any batch is still assigned to the farm
    """
    if session is not None:
        return _delete_farm_impl(farm_id, session)
    with session_scope() as session:
        return _delete_farm_impl(farm_id, session)


def _delete_farm_impl(farm_id: str, session: Session) -> None:
    farm = fetch(session, Farm, farm_id, FarmNotFound)
    shed_ids = select(Shed.id).where(Shed.farm_id == farm_id)
    housed = (
        session.query(Batch)
        .filter((Batch.farm_id == farm_id) | Batch.shed_id.in_(shed_ids))
        .count()
    )
    if housed:
        raise ValidationError(f"Farm '{farm.name}' still has {housed} batch(es) assigned")
    session.delete(farm)
    session.flush()
    log_operation(logger, operation="delete_farm", outcome="success", farm_id=farm_id)


def create_shed(
    farm_id: str,
    name: str,
    capacity: Any = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Create a shed inside a farm.

    Args:
        farm_id: Owning farm
        name: Shed name or number
        capacity: Optional maximum number of birds
        session: Optional database session

    Raises:
        FarmNotFound: If the farm does not exist
        ValidationError: If name or capacity are invalid
    """
    name = _validate_name(name, "Shed name")
    capacity = parse_int(capacity, "Capacity", required=False)
    if session is not None:
        return _create_shed_impl(farm_id, name, capacity, session)
    with session_scope() as session:
        return _create_shed_impl(farm_id, name, capacity, session)


def _create_shed_impl(
    farm_id: str, name: str, capacity: Optional[int], session: Session
) -> Dict[str, Any]:
    fetch(session, Farm, farm_id, FarmNotFound)
    shed = Shed(farm_id=farm_id, name=name, capacity=capacity)
    session.add(shed)
    session.flush()
    log_operation(logger, operation="create_shed", outcome="success", farm_id=farm_id, shed_id=shed.id)
    return shed.to_dict()


def get_shed(shed_id: str, session: Optional[Session] = None) -> Dict[str, Any]:
    """Get a shed by ID.

    Raises:
        ShedNotFound: If the shed does not exist
    """
    if session is not None:
        return fetch(session, Shed, shed_id, ShedNotFound).to_dict()
    with session_scope() as session:
        return fetch(session, Shed, shed_id, ShedNotFound).to_dict()


def list_sheds(farm_id: Optional[str] = None, session: Optional[Session] = None) -> List[Dict[str, Any]]:
    """List sheds ordered by name, optionally for one farm."""
    if session is not None:
        return _list_sheds_impl(farm_id, session)
    with session_scope() as session:
        return _list_sheds_impl(farm_id, session)


def _list_sheds_impl(farm_id: Optional[str], session: Session) -> List[Dict[str, Any]]:
    query = session.query(Shed)
    if farm_id is not None:
        query = query.filter(Shed.farm_id == farm_id)
    return [shed.to_dict() for shed in query.order_by(Shed.name).all()]


def delete_shed(shed_id: str, session: Optional[Session] = None) -> None:
    """Delete a shed.

    Raises:
        ShedNotFound: If the shed does not exist
        ValidationError: If any batch is still housed in the shed
    """
    if session is not None:
        return _delete_shed_impl(shed_id, session)
    with session_scope() as session:
        return _delete_shed_impl(shed_id, session)


def _delete_shed_impl(shed_id: str, session: Session) -> None:
    shed = fetch(session, Shed, shed_id, ShedNotFound)
    housed = session.query(Batch).filter(Batch.shed_id == shed_id).count()
    if housed:
        raise ValidationError(f"Shed '{shed.name}' still houses {housed} batch(es)")
    session.delete(shed)
    session.flush()
    log_operation(logger, operation="delete_shed", outcome="success", shed_id=shed_id)
