import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from timetabler.engine.learning import EditLog
from timetabler.models.entities import SchoolConfig
from timetabler.storage.database import EditLogModel, SchoolConfigModel, TimetableModel

DEFAULT_CONFIG_ID = "default"


class SchoolConfigRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, config_id: str = DEFAULT_CONFIG_ID) -> Optional[SchoolConfig]:
        model = self.db.query(SchoolConfigModel).filter(SchoolConfigModel.id == config_id).first()
        if not model:
            return None
        return SchoolConfig.from_dict(model.data)

    def save(self, config: SchoolConfig, config_id: str = DEFAULT_CONFIG_ID) -> None:
        existing = self.db.query(SchoolConfigModel).filter(SchoolConfigModel.id == config_id).first()
        if existing:
            existing.data = config.to_dict()
        else:
            self.db.add(SchoolConfigModel(id=config_id, data=config.to_dict()))
        self.db.commit()


class TimetableRepository:
    def __init__(self, db: Session):
        self.db = db

    def save(self, name: str, timetable: Dict[str, Any], diagnostics: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        model = TimetableModel(
            id=uuid.uuid4().hex[:12],
            name=name,
            data=timetable,
            diagnostics=diagnostics,
        )
        self.db.add(model)
        self.db.commit()
        self.db.refresh(model)
        return self._metadata(model)

    def list_all(self) -> List[Dict[str, Any]]:
        models = self.db.query(TimetableModel).order_by(TimetableModel.saved_at).all()
        return [self._metadata(m) for m in models]

    def get(self, timetable_id: str) -> Optional[Dict[str, Any]]:
        model = self.db.query(TimetableModel).filter(TimetableModel.id == timetable_id).first()
        if not model:
            return None
        data = self._metadata(model)
        data["timetable"] = model.data
        data["diagnostics"] = model.diagnostics
        return data

    def delete(self, timetable_id: str) -> bool:
        deleted = self.db.query(TimetableModel).filter(TimetableModel.id == timetable_id).delete()
        self.db.commit()
        return deleted > 0

    @staticmethod
    def _metadata(model: TimetableModel) -> Dict[str, Any]:
        return {"id": model.id, "name": model.name, "saved_at": model.saved_at}


class EditLogRepository:
    def __init__(self, db: Session):
        self.db = db

    def log(self, edit: EditLog) -> None:
        self.db.add(EditLogModel(
            class_id=edit.class_id,
            day=edit.day,
            period=edit.period,
            before=edit.before,
            after=edit.after,
            reason=edit.reason,
        ))
        self.db.commit()

    def list_all(self) -> List[EditLog]:
        models = self.db.query(EditLogModel).order_by(EditLogModel.id).all()
        return [self._model_to_edit(m) for m in models]

    @staticmethod
    def _model_to_edit(model: EditLogModel) -> EditLog:
        return EditLog(
            class_id=model.class_id,
            day=model.day,
            period=model.period,
            before=model.before,
            after=model.after,
            reason=model.reason,
        )
