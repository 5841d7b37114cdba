from stockpos.models.user import User
from stockpos.models.product import Product
from stockpos.models.inventory import StockMovement
from stockpos.models.supplier import Supplier
from stockpos.models.entry import StockEntry
from stockpos.models.merma import Merma
from stockpos.models.sales import Sale, SaleLine
