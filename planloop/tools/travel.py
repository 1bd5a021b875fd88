"""
Travel Tools

Mock travel-planning tools used by the demo agents and the tests.

Domain failures (a missing city, say) are reported through the response's
`error` field rather than raised. `ask_for_clarification` is the
human-in-the-loop tool: it interrupts the run and returns the caller's
answer once the run is resumed.
"""

import random

from pydantic import BaseModel, ConfigDict, Field

from planloop.tools.registry import ToolCategory, ToolContext, ToolRegistry, tool

_rng = random.Random()


def seed(value: int) -> None:
    """Seed the generator behind the randomized mock data."""
    _rng.seed(value)


# =============================================================================
# WEATHER
# =============================================================================

class WeatherRequest(BaseModel):
    city: str = Field(default="", description="City name to get weather for")
    date: str = Field(default="", description="Date in YYYY-MM-DD format (optional)")


class WeatherResponse(BaseModel):
    city: str = ""
    temperature: int = 0
    condition: str = ""
    date: str = ""
    error: str | None = None


_WEATHER = {
    "Beijing": (15, "Sunny"),
    "Shanghai": (20, "Cloudy"),
    "Tokyo": (18, "Rainy"),
    "Paris": (12, "Overcast"),
    "New York": (8, "Snow"),
}


@tool(
    name="get_weather",
    description="Get weather information for a specific city and date",
    category=ToolCategory.TRAVEL,
    tags=["travel", "weather"],
)
async def get_weather(request: WeatherRequest) -> WeatherResponse:
    if not request.city:
        return WeatherResponse(error="City is required")

    if request.city in _WEATHER:
        temperature, condition = _WEATHER[request.city]
    else:
        temperature = _rng.randint(5, 34)
        condition = _rng.choice(["Sunny", "Cloudy", "Rainy", "Overcast"])

    return WeatherResponse(
        city=request.city,
        temperature=temperature,
        condition=condition,
        date=request.date,
    )


# =============================================================================
# FLIGHTS
# =============================================================================

class FlightRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_city: str = Field(default="", alias="from", description="Departure city")
    to: str = Field(default="", description="Destination city")
    date: str = Field(default="", description="Departure date in YYYY-MM-DD format")
    passengers: int = Field(default=1, ge=1, description="Number of passengers")


class Flight(BaseModel):
    airline: str
    flight_no: str
    departure: str
    arrival: str
    price: int
    duration: str


class FlightResponse(BaseModel):
    flights: list[Flight] = Field(default_factory=list)
    error: str | None = None


_AIRLINES = ["Air China", "China Eastern", "China Southern", "United Airlines", "Delta"]


@tool(
    name="search_flights",
    description="Search for flights between cities",
    category=ToolCategory.TRAVEL,
    tags=["travel", "flights"],
)
async def search_flights(request: FlightRequest) -> FlightResponse:
    if not request.from_city or not request.to:
        return FlightResponse(error="From and To cities are required")

    flights = []
    for _ in range(3):
        airline = _rng.choice(_AIRLINES)
        flights.append(
            Flight(
                airline=airline,
                flight_no=f"{airline[:2].upper()}{_rng.randint(1000, 9999)}",
                departure=f"{_rng.randint(0, 23):02d}:{_rng.randint(0, 59):02d}",
                arrival=f"{_rng.randint(0, 23):02d}:{_rng.randint(0, 59):02d}",
                price=_rng.randint(500, 2499),
                duration=f"{_rng.randint(1, 12)}h {_rng.randint(0, 59)}m",
            )
        )
    return FlightResponse(flights=flights)


# =============================================================================
# HOTELS
# =============================================================================

class HotelRequest(BaseModel):
    city: str = Field(default="", description="City to search hotels in")
    check_in: str = Field(default="", description="Check-in date in YYYY-MM-DD format")
    check_out: str = Field(default="", description="Check-out date in YYYY-MM-DD format")
    guests: int = Field(default=1, ge=1, description="Number of guests")


class Hotel(BaseModel):
    name: str
    rating: float
    price: int
    location: str
    amenities: list[str] = Field(default_factory=list)


class HotelResponse(BaseModel):
    hotels: list[Hotel] = Field(default_factory=list)
    error: str | None = None


_HOTEL_NAMES = ["Grand Hotel", "City Center Inn", "Luxury Resort", "Budget Lodge", "Business Hotel"]
_AMENITIES = [
    ["WiFi", "Pool", "Gym", "Spa"],
    ["WiFi", "Breakfast", "Parking"],
    ["WiFi", "Pool", "Restaurant", "Bar", "Concierge"],
    ["WiFi", "Breakfast"],
    ["WiFi", "Business Center", "Meeting Rooms"],
]


@tool(
    name="search_hotels",
    description="Search for hotels in a city",
    category=ToolCategory.TRAVEL,
    tags=["travel", "hotels"],
)
async def search_hotels(request: HotelRequest) -> HotelResponse:
    if not request.city:
        return HotelResponse(error="City is required")

    hotels = [
        Hotel(
            name=f"{request.city} {_rng.choice(_HOTEL_NAMES)}",
            rating=_rng.randint(20, 49) / 10.0,
            price=_rng.randint(50, 349),
            location=f"{request.city} Downtown",
            amenities=list(_rng.choice(_AMENITIES)),
        )
        for _ in range(4)
    ]
    return HotelResponse(hotels=hotels)


# =============================================================================
# ATTRACTIONS
# =============================================================================

class AttractionRequest(BaseModel):
    city: str = Field(default="", description="City to search attractions in")
    category: str = Field(
        default="",
        description="Category of attractions (museum, park, landmark, etc.)",
    )


class Attraction(BaseModel):
    name: str
    description: str
    rating: float
    open_hours: str
    ticket_price: int
    category: str


class AttractionResponse(BaseModel):
    attractions: list[Attraction] = Field(default_factory=list)
    error: str | None = None


_ATTRACTIONS: dict[str, list[tuple[str, str, float, str, int, str]]] = {
    "Beijing": [
        ("Forbidden City", "Ancient imperial palace", 4.8, "8:30-17:00", 60, "landmark"),
        ("Great Wall", "Historic fortification", 4.9, "6:00-18:00", 45, "landmark"),
        ("Temple of Heaven", "Imperial sacrificial altar", 4.6, "6:00-22:00", 35, "landmark"),
    ],
    "Paris": [
        ("Eiffel Tower", "Iconic iron lattice tower", 4.7, "9:30-23:45", 25, "landmark"),
        ("Louvre Museum", "World's largest art museum", 4.8, "9:00-18:00", 17, "museum"),
        ("Notre-Dame Cathedral", "Medieval Catholic cathedral", 4.5, "8:00-18:45", 0, "landmark"),
    ],
    "Tokyo": [
        ("Senso-ji Temple", "Ancient Buddhist temple", 4.4, "6:00-17:00", 0, "landmark"),
        ("Tokyo National Museum", "Largest collection of cultural artifacts", 4.3, "9:30-17:00", 1000, "museum"),
        ("Ueno Park", "Large public park with museums", 4.2, "5:00-23:00", 0, "park"),
    ],
}

_GENERIC_ATTRACTIONS = ["Central Museum", "City Park", "Historic Square", "Art Gallery", "Cultural Center"]
_GENERIC_CATEGORIES = ["museum", "park", "landmark", "gallery", "cultural"]


@tool(
    name="search_attractions",
    description="Search for tourist attractions in a city",
    category=ToolCategory.TRAVEL,
    tags=["travel", "attractions"],
)
async def search_attractions(request: AttractionRequest) -> AttractionResponse:
    if not request.city:
        return AttractionResponse(error="City is required")

    known = _ATTRACTIONS.get(request.city)
    if known is not None:
        attractions = [
            Attraction(
                name=name,
                description=description,
                rating=rating,
                open_hours=hours,
                ticket_price=price,
                category=category,
            )
            for name, description, rating, hours, price, category in known
        ]
        if request.category:
            attractions = [a for a in attractions if a.category == request.category]
        return AttractionResponse(attractions=attractions)

    attractions = [
        Attraction(
            name=f"{request.city} {_rng.choice(_GENERIC_ATTRACTIONS)}",
            description="Popular tourist attraction",
            rating=_rng.randint(30, 49) / 10.0,
            open_hours="9:00-17:00",
            ticket_price=_rng.randint(0, 49),
            category=_rng.choice(_GENERIC_CATEGORIES),
        )
        for _ in range(3)
    ]
    return AttractionResponse(attractions=attractions)


# =============================================================================
# HUMAN IN THE LOOP
# =============================================================================

class ClarificationRequest(BaseModel):
    question: str = Field(description="Question the user must answer before planning can go on")


class ClarificationResponse(BaseModel):
    question: str
    answer: str = ""
    error: str | None = None


@tool(
    name="ask_for_clarification",
    description="Ask the user a question and wait for the answer",
    category=ToolCategory.HUMAN,
    tags=["human", "interrupt"],
)
async def ask_for_clarification(
    request: ClarificationRequest,
    context: ToolContext,
) -> ClarificationResponse:
    if not context.resuming:
        context.interrupt(
            "clarification needed",
            info={"question": request.question},
            state={"question": request.question},
        )

    answer = context.resume_value
    if answer is None or answer == "":
        return ClarificationResponse(question=request.question, error="No answer provided")
    return ClarificationResponse(question=request.question, answer=str(answer))


TRAVEL_TOOLS = [
    get_weather,
    search_flights,
    search_hotels,
    search_attractions,
    ask_for_clarification,
]


def register_travel_tools(registry: ToolRegistry) -> ToolRegistry:
    """Register every travel tool on the registry."""
    for func in TRAVEL_TOOLS:
        registry.register_decorated(func)
    return registry
