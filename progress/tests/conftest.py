# progress/tests/conftest.py
import pytest

from progress.config import ProgressConfig
from progress.content import StaticContentStore
from progress.engine import ProgressEngine
from progress.models import VocabularyTask

WORD_LISTS = {
    "t1": ["haus", "baum", "auto"],
    "t5": ["eins", "zwei", "drei", "vier", "fuenf"],
    "t100": [f"wort-{i}" for i in range(100)],
}


@pytest.fixture
def engine():
    return ProgressEngine(config=ProgressConfig(), content=StaticContentStore(WORD_LISTS))


@pytest.fixture
def vocabulary_task(db):
    return VocabularyTask.objects.create(
        task_id="lesson-1-vocabulary",
        content={"vocabulary_data": {"words": ["haus", "baum", "auto"]}},
    )
