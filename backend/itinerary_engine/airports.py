from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from .errors import ItineraryError
from .geo_math import distance_km
from .models import LatLng


@dataclass(frozen=True)
class Airport:
    code: str  # IATA
    name: str
    city: str
    country: str
    lat: float
    lng: float

    @property
    def point(self) -> LatLng:
        return LatLng(lat=self.lat, lng=self.lng)


class AirportLookup(Protocol):
    def nearest_airport(self, point: LatLng) -> Airport: ...


MAJOR_AIRPORTS: tuple[Airport, ...] = (
    Airport("JFK", "John F. Kennedy International Airport", "New York", "USA", 40.6413, -73.7781),
    Airport("LAX", "Los Angeles International Airport", "Los Angeles", "USA", 33.9416, -118.4085),
    Airport("ORD", "O'Hare International Airport", "Chicago", "USA", 41.9742, -87.9073),
    Airport("DFW", "Dallas/Fort Worth International Airport", "Dallas", "USA", 32.8998, -97.0403),
    Airport("ATL", "Hartsfield-Jackson Atlanta International Airport", "Atlanta", "USA", 33.6407, -84.4277),
    Airport("MIA", "Miami International Airport", "Miami", "USA", 25.7959, -80.2870),
    Airport("SFO", "San Francisco International Airport", "San Francisco", "USA", 37.6213, -122.3790),
    Airport("SEA", "Seattle-Tacoma International Airport", "Seattle", "USA", 47.4502, -122.3088),
    Airport("BOS", "Logan International Airport", "Boston", "USA", 42.3656, -71.0096),
    Airport("LAS", "Harry Reid International Airport", "Las Vegas", "USA", 36.0840, -115.1537),
    Airport("YYZ", "Toronto Pearson International Airport", "Toronto", "Canada", 43.6777, -79.6248),
    Airport("YVR", "Vancouver International Airport", "Vancouver", "Canada", 49.1939, -123.1844),
    Airport("MEX", "Mexico City International Airport", "Mexico City", "Mexico", 19.4363, -99.0721),
    Airport("LHR", "London Heathrow Airport", "London", "UK", 51.4700, -0.4543),
    Airport("CDG", "Charles de Gaulle Airport", "Paris", "France", 49.0097, 2.5479),
    Airport("AMS", "Amsterdam Airport Schiphol", "Amsterdam", "Netherlands", 52.3105, 4.7683),
    Airport("FRA", "Frankfurt Airport", "Frankfurt", "Germany", 50.0379, 8.5622),
    Airport("MAD", "Adolfo Suárez Madrid-Barajas Airport", "Madrid", "Spain", 40.4936, -3.5668),
    Airport("BCN", "Barcelona-El Prat Airport", "Barcelona", "Spain", 41.2974, 2.0833),
    Airport("FCO", "Leonardo da Vinci-Fiumicino Airport", "Rome", "Italy", 41.8003, 12.2389),
    Airport("MXP", "Milan Malpensa Airport", "Milan", "Italy", 45.6306, 8.7231),
    Airport("MUC", "Munich Airport", "Munich", "Germany", 48.3538, 11.7750),
    Airport("ZRH", "Zurich Airport", "Zurich", "Switzerland", 47.4647, 8.5492),
    Airport("GVA", "Geneva Airport", "Geneva", "Switzerland", 46.2381, 6.1090),
    Airport("VIE", "Vienna International Airport", "Vienna", "Austria", 48.1103, 16.5697),
    Airport("CPH", "Copenhagen Airport", "Copenhagen", "Denmark", 55.6180, 12.6508),
    Airport("ARN", "Stockholm Arlanda Airport", "Stockholm", "Sweden", 59.6519, 17.9186),
    Airport("OSL", "Oslo Airport", "Oslo", "Norway", 60.1939, 11.1004),
    Airport("HEL", "Helsinki-Vantaa Airport", "Helsinki", "Finland", 60.3172, 24.9633),
    Airport("LIS", "Lisbon Portela Airport", "Lisbon", "Portugal", 38.7813, -9.1357),
    Airport("ATH", "Athens International Airport", "Athens", "Greece", 37.9364, 23.9445),
    Airport("IST", "Istanbul Airport", "Istanbul", "Turkey", 41.2753, 28.7519),
    Airport("SVO", "Sheremetyevo International Airport", "Moscow", "Russia", 55.9726, 37.4146),
    Airport("DXB", "Dubai International Airport", "Dubai", "UAE", 25.2532, 55.3657),
    Airport("DOH", "Hamad International Airport", "Doha", "Qatar", 25.2731, 51.6080),
    Airport("AUH", "Abu Dhabi International Airport", "Abu Dhabi", "UAE", 24.4330, 54.6511),
    Airport("TLV", "Ben Gurion Airport", "Tel Aviv", "Israel", 32.0004, 34.8706),
    Airport("CAI", "Cairo International Airport", "Cairo", "Egypt", 30.1127, 31.4000),
    Airport("HND", "Tokyo Haneda Airport", "Tokyo", "Japan", 35.5494, 139.7798),
    Airport("NRT", "Narita International Airport", "Tokyo", "Japan", 35.7647, 140.3863),
    Airport("ICN", "Incheon International Airport", "Seoul", "South Korea", 37.4602, 126.4407),
    Airport("PEK", "Beijing Capital International Airport", "Beijing", "China", 40.0799, 116.6031),
    Airport("PVG", "Shanghai Pudong International Airport", "Shanghai", "China", 31.1443, 121.8083),
    Airport("HKG", "Hong Kong International Airport", "Hong Kong", "Hong Kong", 22.3080, 113.9185),
    Airport("SIN", "Singapore Changi Airport", "Singapore", "Singapore", 1.3644, 103.9915),
    Airport("BKK", "Suvarnabhumi Airport", "Bangkok", "Thailand", 13.6900, 100.7501),
    Airport("KUL", "Kuala Lumpur International Airport", "Kuala Lumpur", "Malaysia", 2.7456, 101.7099),
    Airport("CGK", "Soekarno-Hatta International Airport", "Jakarta", "Indonesia", -6.1256, 106.6559),
    Airport("DEL", "Indira Gandhi International Airport", "New Delhi", "India", 28.5562, 77.1000),
    Airport("BOM", "Chhatrapati Shivaji Maharaj International Airport", "Mumbai", "India", 19.0896, 72.8656),
    Airport("SYD", "Sydney Kingsford Smith Airport", "Sydney", "Australia", -33.9399, 151.1753),
    Airport("MEL", "Melbourne Airport", "Melbourne", "Australia", -37.6733, 144.8433),
    Airport("AKL", "Auckland Airport", "Auckland", "New Zealand", -37.0082, 174.7850),
    Airport("GRU", "São Paulo/Guarulhos International Airport", "São Paulo", "Brazil", -23.4356, -46.4731),
    Airport("GIG", "Rio de Janeiro/Galeão International Airport", "Rio de Janeiro", "Brazil", -22.8099, -43.2505),
    Airport("EZE", "Ministro Pistarini International Airport", "Buenos Aires", "Argentina", -34.8222, -58.5358),
    Airport("BOG", "El Dorado International Airport", "Bogotá", "Colombia", 4.7016, -74.1469),
    Airport("LIM", "Jorge Chávez International Airport", "Lima", "Peru", -12.0219, -77.1143),
    Airport("SCL", "Arturo Merino Benítez International Airport", "Santiago", "Chile", -33.3930, -70.7858),
    Airport("JNB", "O.R. Tambo International Airport", "Johannesburg", "South Africa", -26.1392, 28.2460),
    Airport("CPT", "Cape Town International Airport", "Cape Town", "South Africa", -33.9715, 18.6021),
    Airport("ADD", "Addis Ababa Bole International Airport", "Addis Ababa", "Ethiopia", 8.9779, 38.7993),
    Airport("NBO", "Jomo Kenyatta International Airport", "Nairobi", "Kenya", -1.3192, 36.9278),
    Airport("LOS", "Murtala Muhammed International Airport", "Lagos", "Nigeria", 6.5774, 3.3212),
)


class StaticAirportLookup:
    """Nearest-airport search over a fixed table (linear scan)."""

    def __init__(self, airports: Sequence[Airport] = MAJOR_AIRPORTS) -> None:
        self._airports = tuple(airports)

    def __len__(self) -> int:
        return len(self._airports)

    def nearest_airport(self, point: LatLng) -> Airport:
        if not self._airports:
            raise ItineraryError(
                reason_code="airport_lookup_failed",
                message="airport table is empty",
            )
        return min(self._airports, key=lambda airport: distance_km(point, airport.point))

    def by_code(self, code: str) -> Airport | None:
        wanted = code.strip().upper()
        for airport in self._airports:
            if airport.code == wanted:
                return airport
        return None
