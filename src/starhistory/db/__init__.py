from .dal import StarGrowthDiff, Store
from .engine import make_engine
from .models import Base
